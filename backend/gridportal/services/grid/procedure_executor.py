"""
Grid Procedure Executor
Calls registered grid procedures on the database named by their registry row.
"""
from typing import Any, Dict, List, Optional
from sqlalchemy import text
import structlog
import time

from gridportal.database import GridDatabaseRouter, grid_db_router
from gridportal.services.grid.naming import is_valid_procedure_name
from gridportal.services.grid.errors import InvalidProcedureNameError

logger = structlog.get_logger()


class GridProcedureExecutor:
    """Execute grid procedures and ad-hoc lookups against grid databases."""

    def __init__(self, router: Optional[GridDatabaseRouter] = None):
        self.router = router or grid_db_router

    def call_scalar(self, database_name: Optional[str], procedure_name: str,
                    params: Dict[str, Any]) -> Any:
        """
        Run SELECT <procedure>(:p1, :p2, ...) and return the single value.

        Parameters are bound in dict order. The name is re-checked against the
        grid naming pattern because it is interpolated into the statement.
        """
        if not is_valid_procedure_name(procedure_name):
            raise InvalidProcedureNameError(procedure_name)

        placeholders = ", ".join(f":{name}" for name in params)
        sql = f"SELECT {procedure_name}({placeholders})"

        start = time.time()
        with self.router.get_connection(database_name) as connection:
            value = connection.execute(text(sql), params).scalar()
            connection.commit()

        logger.info(
            "grid_procedure_executed",
            procedure=procedure_name,
            database=database_name,
            duration_ms=int((time.time() - start) * 1000)
        )
        return value

    def query_rows(self, database_name: Optional[str], sql: str,
                   params: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Run a read query and return rows as dicts."""
        with self.router.get_connection(database_name) as connection:
            result = connection.execute(text(sql), params)
            return [dict(row._mapping) for row in result]


def get_grid_executor() -> GridProcedureExecutor:
    """Dependency for the grid procedure executor."""
    return GridProcedureExecutor()
