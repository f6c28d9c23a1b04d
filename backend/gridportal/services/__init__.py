"""
Services Package
"""
from gridportal.services.grid import (
    DynamicGridService, GridProcedureExecutor, get_grid_executor,
    GridAccessDeniedError, InvalidProcedureNameError, InvalidGridRequestError,
    DrillDownNavigator, DrillDownState
)
from gridportal.services.codegen import GridScaffolder, SchemaIntrospector
from gridportal.services.menu_config import MenuConfigLoader, get_menu_loader

__all__ = [
    "DynamicGridService", "GridProcedureExecutor", "get_grid_executor",
    "GridAccessDeniedError", "InvalidProcedureNameError", "InvalidGridRequestError",
    "DrillDownNavigator", "DrillDownState",
    "GridScaffolder", "SchemaIntrospector",
    "MenuConfigLoader", "get_menu_loader"
]
