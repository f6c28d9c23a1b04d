"""
Dynamic Grid API Routes
"""
from fastapi import APIRouter, Depends, HTTPException, status, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from typing import List
import io
import json
import structlog

from gridportal.config import settings
from gridportal.database import get_db, get_grid_db_router, GridDatabaseRouter
from gridportal.schemas import (
    GridDataRequest, GridDataResponse, RowUpdateRequest, RowUpdateResponse,
    RowDeleteRequest, RowDeleteResponse, RowCreateRequest, RowCreateResponse,
    StoredProcedureInfo, SaveColumnStateRequest, ColumnStateResponse,
    DropdownValuesRequest, DropdownOption, DrillDownRequest, DrillDownResponse,
    DrillDownStateModel, ScaffoldRequest, ScaffoldResponse, ScaffoldStepResult
)
from gridportal.models import User
from gridportal.core.rbac import get_current_user, require_admin
from gridportal.core.audit import AuditLogger
from gridportal.services.grid import (
    DynamicGridService, GridProcedureExecutor, get_grid_executor,
    GridAccessDeniedError, DrillDownNavigator, DrillDownState, DrillDownLevel,
    to_query_params, from_query_params, effective_max_depth
)
from gridportal.services.codegen import GridScaffolder
from gridportal.api.responses import model_response

router = APIRouter()
logger = structlog.get_logger()


def get_grid_service(
    db: Session = Depends(get_db),
    executor: GridProcedureExecutor = Depends(get_grid_executor)
) -> DynamicGridService:
    return DynamicGridService(db, executor)


def access_denied(e: GridAccessDeniedError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))


@router.post("/execute", response_model=GridDataResponse)
async def execute_grid(
    request: GridDataRequest,
    current_user: User = Depends(get_current_user),
    service: DynamicGridService = Depends(get_grid_service)
):
    """Load one page of grid data."""
    try:
        return service.execute_grid_procedure(request, current_user.get_role_names())
    except GridAccessDeniedError as e:
        raise access_denied(e)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except SQLAlchemyError as e:
        logger.error("grid_execute_failed", procedure=request.procedure_name, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while loading grid data"
        )


@router.post("/update-row", response_model=RowUpdateResponse)
async def update_row(
    request: RowUpdateRequest,
    current_user: User = Depends(get_current_user),
    service: DynamicGridService = Depends(get_grid_service),
    db: Session = Depends(get_db)
):
    """Apply a partial change set to one row."""
    try:
        response = service.update_row(request, current_user.get_role_names(), current_user.id)
    except GridAccessDeniedError as e:
        raise access_denied(e)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    AuditLogger(db).log_row_change(
        current_user, "row_update", request.procedure_name, request.row_id,
        response.success, response.error_code, response.message
    )
    if not response.success:
        return model_response(response, status.HTTP_400_BAD_REQUEST)
    return response


@router.post("/delete-row", response_model=RowDeleteResponse)
async def delete_row(
    request: RowDeleteRequest,
    current_user: User = Depends(get_current_user),
    service: DynamicGridService = Depends(get_grid_service),
    db: Session = Depends(get_db)
):
    """Delete one row by its row id."""
    try:
        response = service.delete_row(request, current_user.get_role_names())
    except GridAccessDeniedError as e:
        raise access_denied(e)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    AuditLogger(db).log_row_change(
        current_user, "row_delete", request.procedure_name, request.row_id,
        response.success, response.error_code, response.message
    )
    if not response.success:
        return model_response(response, status.HTTP_400_BAD_REQUEST)
    return response


@router.post("/create-row", response_model=RowCreateResponse)
async def create_row(
    request: RowCreateRequest,
    current_user: User = Depends(get_current_user),
    service: DynamicGridService = Depends(get_grid_service),
    db: Session = Depends(get_db)
):
    """Insert one row."""
    try:
        response = service.create_row(request, current_user.get_role_names(), current_user.id)
    except GridAccessDeniedError as e:
        raise access_denied(e)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    created_id = (response.created_row or {}).get("Id")
    AuditLogger(db).log_row_change(
        current_user, "row_create", request.procedure_name, created_id,
        response.success, response.error_code, response.message
    )
    if not response.success:
        return model_response(response, status.HTTP_400_BAD_REQUEST)
    return response


@router.get("/available-procedures", response_model=List[StoredProcedureInfo])
async def available_procedures(
    current_user: User = Depends(get_current_user),
    service: DynamicGridService = Depends(get_grid_service)
):
    """Grid procedures the caller may open."""
    return service.get_available_procedures(current_user.get_role_names())


@router.get("/column-state/{procedure_name}", response_model=ColumnStateResponse)
async def get_column_state(
    procedure_name: str,
    current_user: User = Depends(get_current_user),
    service: DynamicGridService = Depends(get_grid_service)
):
    return ColumnStateResponse(column_state=service.get_column_state(current_user.id, procedure_name))


@router.post("/column-state")
async def save_column_state(
    request: SaveColumnStateRequest,
    current_user: User = Depends(get_current_user),
    service: DynamicGridService = Depends(get_grid_service)
):
    service.save_column_state(current_user.id, request.procedure_name, request.column_state)
    return {"success": True}


@router.post("/dropdown-values", response_model=List[DropdownOption])
async def dropdown_values(
    request: DropdownValuesRequest,
    current_user: User = Depends(get_current_user),
    service: DynamicGridService = Depends(get_grid_service)
):
    """Options for a dropdown column, optionally filtered by the edited row."""
    try:
        return service.get_dropdown_values(request, current_user.get_role_names())
    except GridAccessDeniedError as e:
        raise access_denied(e)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except SQLAlchemyError as e:
        logger.error("dropdown_query_failed", procedure=request.procedure_name, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while loading dropdown values"
        )


@router.post("/export")
async def export_grid(
    request: GridDataRequest,
    format: str = Query("csv", pattern="^(csv|xlsx)$"),
    current_user: User = Depends(get_current_user),
    service: DynamicGridService = Depends(get_grid_service),
    db: Session = Depends(get_db)
):
    """Export every row matching the request's search, filter and sort."""
    try:
        content, media_type, extension, row_count = service.export_rows(
            request, current_user.get_role_names(), format, settings.EXPORT_MAX_ROWS
        )
    except GridAccessDeniedError as e:
        raise access_denied(e)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    AuditLogger(db).log_export(current_user, request.procedure_name, format, row_count)

    filename = f"{request.procedure_name}.{extension}"
    return StreamingResponse(
        io.BytesIO(content),
        media_type=media_type,
        headers={"Content-Disposition": f"attachment; filename={filename}"}
    )


def _to_state(model: DrillDownStateModel) -> DrillDownState:
    return DrillDownState(
        levels=[DrillDownLevel(**level.model_dump()) for level in model.levels],
        current_level=model.current_level,
        is_stateless=model.is_stateless
    )


def _to_model(state: DrillDownState) -> DrillDownStateModel:
    return DrillDownStateModel(
        levels=[level.__dict__ for level in state.levels],
        current_level=state.current_level,
        is_stateless=state.is_stateless
    )


@router.post("/drill-down", response_model=DrillDownResponse)
async def drill_down(
    request: DrillDownRequest,
    current_user: User = Depends(get_current_user),
    service: DynamicGridService = Depends(get_grid_service)
):
    """
    Apply a navigation action to a drill-down state.

    The state comes from the body or, failing that, from URL query
    parameters. The response carries the new state, its query parameters
    and the filter JSON to send with the next execute call.
    """
    state = _to_state(request.state) if request.state is not None else from_query_params(request.query_params)
    navigator = DrillDownNavigator(state)
    max_depth = settings.DEFAULT_MAX_DEPTH

    if request.action == "drill":
        if not request.column_name:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="columnName is required")
        source_procedure = navigator.current_procedure(request.base_procedure)
        try:
            config = dict(service.get_drill_down_config(
                source_procedure, request.column_name, current_user.get_role_names()
            ))
        except GridAccessDeniedError as e:
            raise access_denied(e)
        except ValueError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

        max_depth = effective_max_depth(
            config, settings.ENABLE_UNLIMITED_DRILL_DOWN, settings.DEFAULT_MAX_DEPTH
        )
        config["maxDepth"] = max_depth
        changed = navigator.drill_down(config, request.row_data, request.base_procedure)
    elif request.action == "back":
        changed = navigator.go_back()
    elif request.action == "level":
        if request.level_index is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="levelIndex is required")
        changed = navigator.go_to_level(request.level_index)
    else:
        navigator.reset()
        changed = True

    filters = navigator.current_filters()
    return DrillDownResponse(
        changed=changed,
        state=_to_model(navigator.state),
        query_params=to_query_params(navigator.state),
        current_procedure=navigator.current_procedure(request.base_procedure),
        drill_down_json=json.dumps(filters) if filters else None,
        max_depth=max_depth
    )


@router.post("/scaffold", response_model=ScaffoldResponse)
async def scaffold_grid(
    request: ScaffoldRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
    db_router: GridDatabaseRouter = Depends(get_grid_db_router)
):
    """Generate, install and register the grid procedures for a table."""
    with db_router.get_connection(request.database_name) as connection:
        result = GridScaffolder(connection).scaffold(
            table_name=request.table_name,
            entity_name=request.entity_name,
            display_name=request.display_name,
            database_name=request.database_name,
            display_columns=request.display_columns,
            editable_columns=request.editable_columns,
            allowed_roles=request.allowed_roles,
            operations=request.operations,
            registry_session=db if request.auto_register else None,
            registered_by=current_user.username
        )

    AuditLogger(db).log(
        action="grid_scaffold",
        user=current_user,
        resource_type="table",
        resource_id=request.table_name,
        details={"entity": request.entity_name, "steps": [s.status for s in result.steps]},
        status="success" if result.success else "failure",
        error_message=result.error
    )

    response = ScaffoldResponse(
        success=result.success,
        table_name=result.table_name,
        entity_name=result.entity_name,
        primary_keys=result.primary_keys,
        display_columns=result.display_columns,
        editable_columns=result.editable_columns,
        steps=[ScaffoldStepResult.model_validate(s.__dict__) for s in result.steps],
        registration_sql=result.registration_sql,
        registered=result.registered,
        report=result.report()
    )
    if not response.success:
        return model_response(response, status.HTTP_400_BAD_REQUEST)
    return response
