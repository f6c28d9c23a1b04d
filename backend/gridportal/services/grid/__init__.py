"""
Grid runtime: registry-gated procedure dispatch, drill-down and export
"""
from gridportal.services.grid.errors import (
    GridAccessDeniedError, InvalidProcedureNameError, InvalidGridRequestError
)
from gridportal.services.grid.procedure_executor import GridProcedureExecutor, get_grid_executor
from gridportal.services.grid.dynamic_grid_service import DynamicGridService
from gridportal.services.grid.drilldown import (
    DrillDownLevel, DrillDownState, DrillDownNavigator,
    to_query_params, from_query_params, effective_max_depth
)
