"""
Grid Procedure Scaffolder

Detects keys and columns for a table, generates the fetch and mutation
procedures, executes each in its own savepoint and reports per-step results
together with the registry SQL.
"""
from dataclasses import dataclass, field
from typing import List, Optional, Sequence
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
import structlog

from gridportal.services.codegen.introspection import SchemaIntrospector, ColumnInfo
from gridportal.services.codegen.fetch_generator import generate_grid_fetch
from gridportal.services.codegen.crud_generator import generate_crud_procedures
from gridportal.services.codegen.registration import (
    build_registration_entries, generate_registration_sql, register_procedures
)
from gridportal.services.grid.naming import (
    fetch_procedure_name, insert_procedure_name, update_procedure_name, delete_procedure_name
)

logger = structlog.get_logger()

AUDIT_COLUMNS = {"created_at", "updated_at", "deleted_at", "created_by", "updated_by", "deleted_by"}
ALL_OPERATIONS = ("fetch", "insert", "update", "delete")
MUTATION_OPERATIONS = ("insert", "update", "delete")

STATUS_CREATED = "created"
STATUS_FAILED = "failed"
STATUS_SKIPPED = "skipped"


@dataclass
class ScaffoldStep:
    step: str
    procedure_name: Optional[str]
    status: str
    message: Optional[str] = None


@dataclass
class ScaffoldResult:
    table_name: str
    entity_name: str
    primary_keys: List[str] = field(default_factory=list)
    display_columns: List[str] = field(default_factory=list)
    editable_columns: List[str] = field(default_factory=list)
    steps: List[ScaffoldStep] = field(default_factory=list)
    registration_sql: Optional[str] = None
    registered: bool = False
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None and all(s.status != STATUS_FAILED for s in self.steps)

    def report(self) -> str:
        """Human-readable summary of the run."""
        lines = [f"Scaffolding {self.entity_name} from table {self.table_name}"]
        if self.error:
            lines.append(f"ERROR: {self.error}")
            return "\n".join(lines)

        lines.append(f"Primary keys: {', '.join(self.primary_keys)}")
        lines.append(f"Display columns: {', '.join(self.display_columns)}")
        lines.append(f"Editable columns: {', '.join(self.editable_columns)}")
        lines.append("")
        for step in self.steps:
            label = {STATUS_CREATED: "Created", STATUS_FAILED: "Failed", STATUS_SKIPPED: "Skipped"}[step.status]
            line = f"{label} {step.step}"
            if step.procedure_name:
                line += f": {step.procedure_name}"
            if step.message:
                line += f" ({step.message})"
            lines.append(line)

        if self.registration_sql:
            lines.append("")
            lines.append("Registered in StoredProcedureRegistry" if self.registered
                         else "Run the following SQL to register the procedures:")
            if not self.registered:
                lines.append(self.registration_sql)
        return "\n".join(lines)


def default_display_columns(columns: List[ColumnInfo]) -> List[str]:
    return [c.name for c in columns if not c.name.startswith("_")]


def default_editable_columns(columns: List[ColumnInfo], primary_keys: List[str]) -> List[str]:
    """
    Columns a user may type into: not auto-increment keys, not audit columns,
    not underscore-prefixed and without a function default.
    """
    keys = set(primary_keys)
    editable = []
    for column in columns:
        if column.name in keys and column.is_auto_increment:
            continue
        if column.name.lower() in AUDIT_COLUMNS:
            continue
        if column.name.startswith("_"):
            continue
        if column.has_function_default or column.is_auto_increment:
            continue
        editable.append(column.name)
    return editable


class GridScaffolder:
    """Generate and install grid procedures for a table on one database connection."""

    def __init__(self, connection, schema: str = "public",
                 introspector: Optional[SchemaIntrospector] = None):
        self.connection = connection
        self.introspector = introspector or SchemaIntrospector(connection, schema=schema)

    def _execute_ddl(self, sql: str):
        with self.connection.begin_nested():
            self.connection.exec_driver_sql(sql, execution_options={"no_parameters": True})

    def _run_step(self, result: ScaffoldResult, step: str, procedure_name: str, sql: str):
        try:
            self._execute_ddl(sql)
        except SQLAlchemyError as e:
            logger.error("scaffold_step_failed", step=step, procedure=procedure_name, error=str(e))
            result.steps.append(ScaffoldStep(step, procedure_name, STATUS_FAILED, str(e).splitlines()[0]))
            return
        logger.info("scaffold_step_created", step=step, procedure=procedure_name)
        result.steps.append(ScaffoldStep(step, procedure_name, STATUS_CREATED))

    def scaffold(
        self,
        table_name: str,
        entity_name: str,
        display_name: str,
        database_name: Optional[str] = None,
        display_columns: Optional[Sequence[str]] = None,
        editable_columns: Optional[Sequence[str]] = None,
        allowed_roles: Sequence[str] = ("Admin", "Manager", "User"),
        operations: Sequence[str] = ALL_OPERATIONS,
        registry_session: Optional[Session] = None,
        registered_by: Optional[str] = None
    ) -> ScaffoldResult:
        """
        Create the requested procedures for a table.

        Steps fail independently. When a registry session is supplied the
        procedures are registered, otherwise only the registration SQL is returned.
        """
        result = ScaffoldResult(table_name=table_name, entity_name=entity_name)
        operations = [op.lower() for op in operations]
        unknown = [op for op in operations if op not in ALL_OPERATIONS]
        if unknown:
            result.error = f"Unknown operations: {', '.join(unknown)}"
            return result

        if not self.introspector.table_exists(table_name):
            result.error = f"Table {table_name} not found in schema {self.introspector.schema}"
            return result

        primary_keys = self.introspector.get_primary_keys(table_name)
        if not primary_keys:
            result.error = f"No primary key found for table {table_name}"
            logger.warning("scaffold_no_primary_key", table=table_name)
            return result

        columns = self.introspector.get_columns(table_name)
        result.primary_keys = list(primary_keys)
        result.display_columns = list(display_columns) if display_columns else default_display_columns(columns)
        result.editable_columns = (
            list(editable_columns) if editable_columns
            else default_editable_columns(columns, primary_keys)
        )

        if "fetch" in operations:
            try:
                sql = generate_grid_fetch(
                    self.introspector, table_name, entity_name, primary_keys, result.display_columns
                )
            except ValueError as e:
                result.steps.append(ScaffoldStep("fetch", fetch_procedure_name(entity_name), STATUS_FAILED, str(e)))
            else:
                self._run_step(result, "fetch", fetch_procedure_name(entity_name), sql)
        else:
            result.steps.append(ScaffoldStep("fetch", fetch_procedure_name(entity_name), STATUS_SKIPPED))

        mutation_names = {
            "insert": insert_procedure_name(entity_name),
            "update": update_procedure_name(entity_name),
            "delete": delete_procedure_name(entity_name),
        }
        if any(op in operations for op in MUTATION_OPERATIONS):
            try:
                crud = generate_crud_procedures(
                    self.introspector, table_name, entity_name, primary_keys, result.editable_columns
                )
            except ValueError as e:
                for op in MUTATION_OPERATIONS:
                    result.steps.append(ScaffoldStep(op, mutation_names[op], STATUS_FAILED, str(e)))
            else:
                self._run_step(result, "insert", mutation_names["insert"], crud.insert_sql)
                self._run_step(result, "update", mutation_names["update"], crud.update_sql)
                self._run_step(result, "delete", mutation_names["delete"], crud.delete_sql)
        else:
            for op in MUTATION_OPERATIONS:
                result.steps.append(ScaffoldStep(op, mutation_names[op], STATUS_SKIPPED))

        self.connection.commit()

        created = {s.step for s in result.steps if s.status == STATUS_CREATED}
        entries = build_registration_entries(
            entity_name, display_name, allowed_roles, database_name,
            operations=[op for op in ALL_OPERATIONS if op in created and op in operations]
        )
        result.registration_sql = generate_registration_sql(entries)

        if registry_session is not None and entries:
            register_procedures(registry_session, entries, registered_by=registered_by)
            result.registered = True

        logger.info(
            "scaffold_completed",
            table=table_name,
            entity=entity_name,
            created=sorted(created),
            registered=result.registered
        )
        return result
