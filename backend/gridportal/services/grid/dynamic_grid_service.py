"""
Dynamic Grid Service

Turns registry rows into parameterized calls against arbitrary grid
procedures. Every call is gated by StoredProcedureRegistry: a procedure that
is absent or inactive is unreachable regardless of the caller's roles.
"""
import json
import math
import re
from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
import structlog

from gridportal.models import StoredProcedureRegistry, ColumnMetadata, GridColumnState
from gridportal.schemas import (
    GridDataRequest, GridDataResponse, ColumnDefinition,
    RowUpdateRequest, RowUpdateResponse, RowDeleteRequest, RowDeleteResponse,
    RowCreateRequest, RowCreateResponse, StoredProcedureInfo,
    DropdownValuesRequest, DropdownOption
)
from gridportal.services.grid.errors import (
    GridAccessDeniedError, InvalidProcedureNameError, InvalidGridRequestError
)
from gridportal.services.grid.export import rows_to_dataframe, render_export
from gridportal.services.grid.naming import (
    is_valid_procedure_name, companion_candidates, display_name_from_procedure
)
from gridportal.services.grid.procedure_executor import GridProcedureExecutor
from gridportal.services.grid.row_id import row_id_to_parameter
from gridportal.services.grid.row_model import build_grid_metadata

logger = structlog.get_logger()

# Optional schema prefix, then table name
MASTER_TABLE_PATTERN = re.compile(r"^(?:[A-Za-z_][A-Za-z0-9_]*\.)?[A-Za-z_][A-Za-z0-9_]*$")
COLUMN_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
ROW_CONTEXT_PLACEHOLDER = re.compile(r"@param_([A-Za-z0-9_]+)")


def _parse_json_object(raw: Optional[str], field: str) -> Dict[str, Any]:
    if raw is None or raw.strip() == "":
        return {}
    try:
        value = json.loads(raw)
    except ValueError:
        raise InvalidGridRequestError(f"{field} is not valid JSON")
    if not isinstance(value, dict):
        raise InvalidGridRequestError(f"{field} must be a JSON object")
    return value


def _parse_procedure_result(value: Any) -> Optional[Dict[str, Any]]:
    """Procedures return JSONB; drivers hand it back as dict or text."""
    if value is None:
        return None
    if isinstance(value, dict):
        return value
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8")
    parsed = json.loads(value)
    return parsed if isinstance(parsed, dict) else None


def _quote_table(name: str) -> str:
    return ".".join(f'"{part}"' for part in name.split("."))


class DynamicGridService:
    """Registry-gated dispatch to grid procedures."""

    def __init__(self, db: Session, executor: GridProcedureExecutor):
        self.db = db
        self.executor = executor

    # Registry access

    def _get_registry(self, procedure_name: str) -> Optional[StoredProcedureRegistry]:
        return self.db.query(StoredProcedureRegistry).filter(
            StoredProcedureRegistry.procedure_name == procedure_name,
            StoredProcedureRegistry.is_active == True
        ).first()

    def validate_procedure_access(self, procedure_name: str, user_roles: List[str]) -> bool:
        """Active registry row whose AllowedRoles intersect the caller's roles."""
        procedure = self._get_registry(procedure_name)
        if procedure is None:
            logger.warning("procedure_not_registered", procedure=procedure_name)
            return False
        return procedure.is_accessible_by(user_roles)

    def _require_access(self, procedure_name: str, user_roles: List[str]) -> StoredProcedureRegistry:
        procedure = self._get_registry(procedure_name)
        if procedure is None or not procedure.is_accessible_by(user_roles):
            logger.warning("grid_access_denied", procedure=procedure_name, roles=user_roles)
            raise GridAccessDeniedError(procedure_name)
        if not is_valid_procedure_name(procedure_name):
            raise InvalidProcedureNameError(procedure_name)
        return procedure

    def _resolve_companion(self, grid_procedure: str, verb: str,
                           user_roles: List[str]) -> Optional[StoredProcedureRegistry]:
        """First registered and accessible companion procedure for the grid."""
        for candidate in companion_candidates(grid_procedure, verb):
            procedure = self._get_registry(candidate)
            if procedure is not None and procedure.is_accessible_by(user_roles):
                logger.info("companion_procedure_resolved", grid=grid_procedure, verb=verb, procedure=candidate)
                return procedure
        logger.warning("companion_procedure_not_found", grid=grid_procedure, verb=verb)
        return None

    # Fetch

    def _build_filter_json(self, request: GridDataRequest) -> Optional[str]:
        filters = _parse_json_object(request.filter_json, "filterJson")
        drill_down = _parse_json_object(request.drill_down_json, "drillDownJson")
        # Drill-down constraints come from the parent row and take precedence
        filters.update(drill_down)
        return json.dumps(filters) if filters else None

    def _merge_column_metadata(self, procedure_name: str, columns: List[ColumnDefinition]):
        """Attach registry-side dropdown and link configs the procedure did not supply."""
        metadata = {
            m.column_name: m for m in self.db.query(ColumnMetadata).filter(
                ColumnMetadata.procedure_name == procedure_name,
                ColumnMetadata.is_active == True
            ).all()
        }
        if not metadata:
            return

        for column in columns:
            meta = metadata.get(column.field)
            if meta is None:
                continue
            if column.dropdown_config is None and meta.is_dropdown:
                column.dropdown_config = {
                    "type": meta.dropdown_type,
                    "staticValues": meta.get_static_values() if meta.static_values_json else None,
                    "masterTable": meta.master_table,
                    "valueField": meta.value_field,
                    "labelField": meta.label_field,
                    "filterCondition": meta.filter_condition,
                    "dependsOn": meta.get_depends_on() if meta.depends_on_json else None,
                }
            if column.link_config is None and meta.link_config and meta.link_config.get("enabled"):
                column.link_config = meta.link_config

    def execute_grid_procedure(self, request: GridDataRequest, user_roles: List[str]) -> GridDataResponse:
        """Fetch one page (or window) of grid data."""
        procedure = self._require_access(request.procedure_name, user_roles)
        filter_json = self._build_filter_json(request)

        sort_direction = "DESC" if (request.sort_direction or "").upper() == "DESC" else "ASC"
        params = {
            "p_PageNumber": request.page_number,
            "p_PageSize": request.page_size,
            "p_StartRow": request.start_row,
            "p_EndRow": request.end_row,
            "p_SortColumn": request.sort_column or None,
            "p_SortDirection": sort_direction,
            "p_FilterJson": filter_json,
            "p_SearchTerm": request.search_term or None,
        }

        logger.info(
            "grid_fetch",
            procedure=request.procedure_name,
            database=procedure.database_name,
            page=request.page_number,
            page_size=request.page_size
        )

        result = _parse_procedure_result(
            self.executor.call_scalar(procedure.database_name, request.procedure_name, params)
        )

        response = GridDataResponse(page_number=request.page_number, page_size=request.page_size)
        if result is None:
            response.metadata = build_grid_metadata(
                0, request.start_row is not None, request.procedure_name, procedure.display_name
            )
            return response

        response.rows = result.get("rows") or []
        response.columns = [ColumnDefinition.model_validate(c) for c in (result.get("columns") or [])]
        response.total_count = int(result.get("totalCount") or 0)
        response.last_row = response.total_count
        response.total_pages = math.ceil(response.total_count / request.page_size) if request.page_size else 0
        response.metadata = build_grid_metadata(
            response.total_count,
            request.start_row is not None and request.end_row is not None,
            request.procedure_name,
            procedure.display_name
        )
        self._merge_column_metadata(request.procedure_name, response.columns)
        return response

    def fetch_all_rows(self, request: GridDataRequest, user_roles: List[str],
                       max_rows: int) -> Tuple[List[Dict[str, Any]], List[ColumnDefinition]]:
        """Single large page with the request's search, filter and sort applied."""
        full_request = request.model_copy(update={
            "page_number": 1,
            "page_size": max_rows,
            "start_row": None,
            "end_row": None,
        })
        response = self.execute_grid_procedure(full_request, user_roles)
        return response.rows, response.columns

    def export_rows(self, request: GridDataRequest, user_roles: List[str], export_format: str,
                    max_rows: int) -> Tuple[bytes, str, str, int]:
        """Return (content, media type, extension, row count)."""
        rows, columns = self.fetch_all_rows(request, user_roles, max_rows)
        df = rows_to_dataframe(rows, columns)
        content, media_type, extension = render_export(
            df, export_format, display_name_from_procedure(request.procedure_name)
        )
        logger.info("grid_exported", procedure=request.procedure_name, format=export_format, rows=len(df))
        return content, media_type, extension, len(df)

    # Mutations

    def _call_mutation(self, procedure: StoredProcedureRegistry, params: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        value = self.executor.call_scalar(procedure.database_name, procedure.procedure_name, params)
        return _parse_procedure_result(value)

    def update_row(self, request: RowUpdateRequest, user_roles: List[str],
                   user_id: Optional[int]) -> RowUpdateResponse:
        self._require_access(request.procedure_name, user_roles)

        procedure = self._resolve_companion(request.procedure_name, "update", user_roles)
        if procedure is None:
            return RowUpdateResponse(
                success=False,
                message="Update not supported for this grid",
                error_code="UPDATE_NOT_SUPPORTED"
            )

        try:
            result = self._call_mutation(procedure, {
                "p_RowId": row_id_to_parameter(request.row_id),
                "p_ChangesJson": json.dumps(request.changes, default=str),
                "p_UserId": user_id,
            })
        except (SQLAlchemyError, ValueError) as e:
            logger.error("update_procedure_failed", procedure=procedure.procedure_name, error=str(e))
            return RowUpdateResponse(success=False, message="Database error occurred", error_code="DB_ERROR")

        if result is None:
            return RowUpdateResponse(success=False, message="No response from update procedure")
        return RowUpdateResponse.model_validate(result)

    def delete_row(self, request: RowDeleteRequest, user_roles: List[str]) -> RowDeleteResponse:
        self._require_access(request.procedure_name, user_roles)

        procedure = self._resolve_companion(request.procedure_name, "delete", user_roles)
        if procedure is None:
            return RowDeleteResponse(
                success=False,
                message="Delete not supported for this grid",
                error_code="DELETE_NOT_SUPPORTED"
            )

        try:
            result = self._call_mutation(procedure, {"p_RowId": row_id_to_parameter(request.row_id)})
        except (SQLAlchemyError, ValueError) as e:
            logger.error("delete_procedure_failed", procedure=procedure.procedure_name, error=str(e))
            return RowDeleteResponse(success=False, message="Database error occurred", error_code="DB_ERROR")

        if result is None:
            return RowDeleteResponse(success=False, message="No response from delete procedure")
        return RowDeleteResponse.model_validate(result)

    def create_row(self, request: RowCreateRequest, user_roles: List[str],
                   user_id: Optional[int]) -> RowCreateResponse:
        self._require_access(request.procedure_name, user_roles)

        procedure = self._resolve_companion(request.procedure_name, "insert", user_roles)
        if procedure is None:
            return RowCreateResponse(
                success=False,
                message="Insert not supported for this grid",
                error_code="INSERT_NOT_SUPPORTED"
            )

        try:
            result = self._call_mutation(procedure, {
                "p_FieldValuesJson": json.dumps(request.field_values, default=str),
                "p_UserId": user_id,
            })
        except (SQLAlchemyError, ValueError) as e:
            logger.error("insert_procedure_failed", procedure=procedure.procedure_name, error=str(e))
            return RowCreateResponse(success=False, message="Database error occurred", error_code="DB_ERROR")

        if result is None:
            return RowCreateResponse(success=False, message="No response from insert procedure")
        return RowCreateResponse.model_validate(result)

    # Registry listing

    def get_available_procedures(self, user_roles: List[str]) -> List[StoredProcedureInfo]:
        procedures = self.db.query(StoredProcedureRegistry).filter(
            StoredProcedureRegistry.is_active == True
        ).order_by(StoredProcedureRegistry.display_name).all()

        return [
            StoredProcedureInfo(
                id=p.id,
                procedure_name=p.procedure_name,
                display_name=p.display_name,
                description=p.description,
                category=p.category,
                database_name=p.database_name,
                is_active=p.is_active,
                requires_auth=p.requires_auth,
                allowed_roles=p.get_allowed_roles(),
                default_page_size=p.default_page_size,
                max_page_size=p.max_page_size,
            )
            for p in procedures if p.is_accessible_by(user_roles)
        ]

    # Column state

    def get_column_state(self, user_id: int, procedure_name: str) -> Optional[str]:
        state = self.db.query(GridColumnState).filter(
            GridColumnState.user_id == user_id,
            GridColumnState.procedure_name == procedure_name
        ).first()
        return state.column_state if state else None

    def save_column_state(self, user_id: int, procedure_name: str, column_state: str):
        state = self.db.query(GridColumnState).filter(
            GridColumnState.user_id == user_id,
            GridColumnState.procedure_name == procedure_name
        ).first()
        if state is None:
            state = GridColumnState(user_id=user_id, procedure_name=procedure_name, column_state=column_state)
            self.db.add(state)
        else:
            state.column_state = column_state
        self.db.commit()
        logger.info("column_state_saved", user_id=user_id, procedure=procedure_name)

    # Drill-down

    def get_drill_down_config(self, procedure_name: str, column_name: str,
                              user_roles: List[str]) -> Dict[str, Any]:
        """Drill-down configuration stored in the column's LinkConfig."""
        self._require_access(procedure_name, user_roles)
        metadata = self.db.query(ColumnMetadata).filter(
            ColumnMetadata.procedure_name == procedure_name,
            ColumnMetadata.column_name == column_name,
            ColumnMetadata.is_active == True
        ).first()
        config = metadata.get_drill_down_config() if metadata else None
        if not config or not config.get("targetProcedure"):
            raise InvalidGridRequestError(f"Drill-down is not configured for column {column_name}")
        return config

    # Dropdowns

    def _find_dropdown_metadata(self, request: DropdownValuesRequest) -> Optional[ColumnMetadata]:
        candidates = self.db.query(ColumnMetadata).filter(
            ColumnMetadata.procedure_name == request.procedure_name,
            ColumnMetadata.is_active == True,
            ColumnMetadata.cell_editor == "dropdown"
        ).all()

        if request.column_name:
            return next((m for m in candidates if m.column_name == request.column_name), None)

        def same(a: Optional[str], b: Optional[str]) -> bool:
            return (a or "").lower() == (b or "").lower()

        return next(
            (m for m in candidates
             if same(m.master_table, request.master_table)
             and same(m.value_field, request.value_field)
             and same(m.label_field, request.label_field)),
            None
        )

    def get_dropdown_values(self, request: DropdownValuesRequest, user_roles: List[str]) -> List[DropdownOption]:
        """
        Options for a dropdown column.

        Only configurations stored in ColumnMetadata are served; the stored
        FilterCondition is used and its @param_<Field> placeholders are bound
        from the row context.
        """
        procedure = self._require_access(request.procedure_name, user_roles)
        metadata = self._find_dropdown_metadata(request)
        if metadata is None:
            raise InvalidGridRequestError("Dropdown is not configured for this column")

        if (metadata.dropdown_type or "").lower() == "static":
            options = []
            for item in metadata.get_static_values():
                if isinstance(item, dict):
                    value = item.get("value")
                    options.append(DropdownOption(value=value, label=str(item.get("label", value))))
                else:
                    options.append(DropdownOption(value=item, label=str(item)))
            return options

        master_table = metadata.master_table or ""
        value_field = metadata.value_field or ""
        label_field = metadata.label_field or value_field
        if not MASTER_TABLE_PATTERN.fullmatch(master_table):
            raise InvalidGridRequestError(f"Invalid master table: {master_table}")
        for field in (value_field, label_field):
            if not COLUMN_PATTERN.fullmatch(field):
                raise InvalidGridRequestError(f"Invalid dropdown field: {field}")

        sql = f'SELECT DISTINCT "{value_field}" AS value, "{label_field}" AS label FROM {_quote_table(master_table)}'
        params: Dict[str, Any] = {}
        if metadata.filter_condition:
            context = request.row_context or {}
            lowered = {str(k).lower(): v for k, v in context.items()}

            def bind(match):
                name = match.group(1)
                params[f"param_{name}"] = context.get(name, lowered.get(name.lower()))
                return f":param_{name}"

            sql += " WHERE " + ROW_CONTEXT_PLACEHOLDER.sub(bind, metadata.filter_condition)
        sql += " ORDER BY label"

        rows = self.executor.query_rows(procedure.database_name, sql, params)
        return [
            DropdownOption(value=row["value"], label="" if row["label"] is None else str(row["label"]))
            for row in rows
        ]
