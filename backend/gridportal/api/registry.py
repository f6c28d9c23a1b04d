"""
Procedure Registry API Routes (Admin only)

Maintains StoredProcedureRegistry rows and the ColumnMetadata that drives
dropdown and drill-down behavior of grid columns.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List
import json

from gridportal.database import get_db
from gridportal.schemas import (
    StoredProcedureInfo, ProcedureRegistrationRequest, ProcedureUpdateRequest,
    ColumnMetadataItem, ColumnMetadataResponse
)
from gridportal.models import User, StoredProcedureRegistry, ColumnMetadata
from gridportal.core.rbac import require_admin
from gridportal.core.audit import AuditLogger
from gridportal.services.grid.naming import is_valid_procedure_name

router = APIRouter()


def to_procedure_info(procedure: StoredProcedureRegistry) -> StoredProcedureInfo:
    return StoredProcedureInfo(
        id=procedure.id,
        procedure_name=procedure.procedure_name,
        display_name=procedure.display_name,
        description=procedure.description,
        category=procedure.category,
        database_name=procedure.database_name,
        is_active=procedure.is_active,
        requires_auth=procedure.requires_auth,
        allowed_roles=procedure.get_allowed_roles(),
        default_page_size=procedure.default_page_size,
        max_page_size=procedure.max_page_size,
    )


def to_column_metadata_response(metadata: ColumnMetadata) -> ColumnMetadataResponse:
    return ColumnMetadataResponse(
        id=metadata.id,
        procedure_name=metadata.procedure_name,
        column_name=metadata.column_name,
        cell_editor=metadata.cell_editor,
        dropdown_type=metadata.dropdown_type,
        static_values=metadata.get_static_values() if metadata.static_values_json else None,
        master_table=metadata.master_table,
        value_field=metadata.value_field,
        label_field=metadata.label_field,
        filter_condition=metadata.filter_condition,
        depends_on=metadata.get_depends_on() if metadata.depends_on_json else None,
        link_config=metadata.link_config,
        is_active=metadata.is_active,
        updated_at=metadata.updated_at,
    )


@router.get("/procedures", response_model=List[StoredProcedureInfo])
async def list_procedures(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """All registered procedures, active or not."""
    procedures = db.query(StoredProcedureRegistry).order_by(StoredProcedureRegistry.procedure_name).all()
    return [to_procedure_info(p) for p in procedures]


@router.post("/procedures", response_model=StoredProcedureInfo, status_code=status.HTTP_201_CREATED)
async def register_procedure(
    request: ProcedureRegistrationRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Register a grid procedure."""
    if not is_valid_procedure_name(request.procedure_name):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid procedure name: {request.procedure_name}"
        )

    existing = db.query(StoredProcedureRegistry).filter(
        StoredProcedureRegistry.procedure_name == request.procedure_name
    ).first()
    if existing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Procedure '{request.procedure_name}' is already registered"
        )

    procedure = StoredProcedureRegistry(
        procedure_name=request.procedure_name,
        display_name=request.display_name,
        description=request.description,
        category=request.category,
        database_name=request.database_name,
        client_id=request.client_id,
        is_active=request.is_active,
        requires_auth=request.requires_auth,
        cache_duration_seconds=request.cache_duration_seconds,
        default_page_size=request.default_page_size,
        max_page_size=request.max_page_size,
        created_by=current_user.username
    )
    procedure.set_allowed_roles(request.allowed_roles)

    db.add(procedure)
    db.commit()
    db.refresh(procedure)

    auditor = AuditLogger(db)
    auditor.log(
        action="procedure_register",
        user=current_user,
        resource_type="procedure",
        resource_id=procedure.procedure_name
    )

    return to_procedure_info(procedure)


@router.put("/procedures/{procedure_id}", response_model=StoredProcedureInfo)
async def update_procedure(
    procedure_id: int,
    request: ProcedureUpdateRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Update a registry row. Omitted fields keep their values."""
    procedure = db.query(StoredProcedureRegistry).filter(StoredProcedureRegistry.id == procedure_id).first()
    if not procedure:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Procedure not found")

    changes = request.model_dump(exclude_unset=True)
    allowed_roles = changes.pop("allowed_roles", None)
    for field, value in changes.items():
        setattr(procedure, field, value)
    if allowed_roles is not None:
        procedure.set_allowed_roles(allowed_roles)
    procedure.updated_by = current_user.username

    db.commit()
    db.refresh(procedure)

    auditor = AuditLogger(db)
    auditor.log(
        action="procedure_update",
        user=current_user,
        resource_type="procedure",
        resource_id=procedure.procedure_name,
        details={"fields": sorted(request.model_dump(exclude_unset=True).keys())}
    )

    return to_procedure_info(procedure)


@router.delete("/procedures/{procedure_id}")
async def delete_procedure(
    procedure_id: int,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Remove a procedure from the registry. The database function itself is left in place."""
    procedure = db.query(StoredProcedureRegistry).filter(StoredProcedureRegistry.id == procedure_id).first()
    if not procedure:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Procedure not found")

    name = procedure.procedure_name
    db.delete(procedure)
    db.commit()

    auditor = AuditLogger(db)
    auditor.log(action="procedure_delete", user=current_user, resource_type="procedure", resource_id=name)

    return {"message": "Procedure removed from registry"}


@router.get("/column-metadata/{procedure_name}", response_model=List[ColumnMetadataResponse])
async def get_column_metadata(
    procedure_name: str,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    items = db.query(ColumnMetadata).filter(
        ColumnMetadata.procedure_name == procedure_name
    ).order_by(ColumnMetadata.column_name).all()
    return [to_column_metadata_response(m) for m in items]


@router.put("/column-metadata/{procedure_name}", response_model=List[ColumnMetadataResponse])
async def save_column_metadata(
    procedure_name: str,
    items: List[ColumnMetadataItem],
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Upsert column metadata by column name."""
    existing = {
        m.column_name: m for m in db.query(ColumnMetadata).filter(
            ColumnMetadata.procedure_name == procedure_name
        ).all()
    }

    for item in items:
        metadata = existing.get(item.column_name)
        if metadata is None:
            metadata = ColumnMetadata(procedure_name=procedure_name, column_name=item.column_name)
            db.add(metadata)
            existing[item.column_name] = metadata

        metadata.cell_editor = item.cell_editor
        metadata.dropdown_type = item.dropdown_type
        metadata.static_values_json = json.dumps(item.static_values) if item.static_values is not None else None
        metadata.master_table = item.master_table
        metadata.value_field = item.value_field
        metadata.label_field = item.label_field
        metadata.filter_condition = item.filter_condition
        metadata.depends_on_json = json.dumps(item.depends_on) if item.depends_on is not None else None
        metadata.link_config = item.link_config
        metadata.is_active = item.is_active

    db.commit()

    auditor = AuditLogger(db)
    auditor.log(
        action="column_metadata_update",
        user=current_user,
        resource_type="procedure",
        resource_id=procedure_name,
        details={"columns": [i.column_name for i in items]}
    )

    return [to_column_metadata_response(m) for m in sorted(existing.values(), key=lambda m: m.column_name)]
