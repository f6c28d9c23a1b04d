"""
Grid Registry Models

StoredProcedureRegistry and ColumnMetadata keep their PascalCase table and
column names: the generated fetch procedures query "ColumnMetadata" directly.
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, JSON, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from typing import Any, List, Optional
import json
import structlog

from gridportal.database import Base

logger = structlog.get_logger()

JsonColumnType = JSON().with_variant(JSONB(), "postgresql")


def _load_json_list(raw: Optional[str], field: str, owner: str) -> List[Any]:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("invalid_json_column", field=field, owner=owner)
        return []
    return value if isinstance(value, list) else []


class StoredProcedureRegistry(Base):
    """A stored procedure that may be called through the grid API."""
    __tablename__ = "StoredProcedureRegistry"

    id = Column("Id", Integer, primary_key=True, index=True)
    procedure_name = Column("ProcedureName", String(200), unique=True, nullable=False, index=True)
    display_name = Column("DisplayName", String(100), nullable=False)
    description = Column("Description", String(500))
    client_id = Column("ClientId", Integer)
    category = Column("Category", String(50))
    database_name = Column("DatabaseName", String(100))
    is_active = Column("IsActive", Boolean, nullable=False, default=True)
    requires_auth = Column("RequiresAuth", Boolean, nullable=False, default=True)
    allowed_roles = Column("AllowedRoles", Text, nullable=False, default="[]")  # JSON array of role names
    cache_duration_seconds = Column("CacheDurationSeconds", Integer)
    default_page_size = Column("DefaultPageSize", Integer, nullable=False, default=15)
    max_page_size = Column("MaxPageSize", Integer, nullable=False, default=1000)
    created_at = Column("CreatedAt", DateTime(timezone=True), server_default=func.now())
    updated_at = Column("UpdatedAt", DateTime(timezone=True), onupdate=func.now())
    created_by = Column("CreatedBy", String(100))
    updated_by = Column("UpdatedBy", String(100))

    def get_allowed_roles(self) -> List[str]:
        """Parse AllowedRoles; malformed values allow nobody."""
        return [str(r) for r in _load_json_list(self.allowed_roles, "AllowedRoles", self.procedure_name)]

    def set_allowed_roles(self, roles: List[str]):
        self.allowed_roles = json.dumps(list(roles))

    def is_accessible_by(self, user_roles: List[str]) -> bool:
        """Check whether any of the given roles may call this procedure."""
        if not self.is_active:
            return False
        if not self.requires_auth:
            return True
        allowed = set(self.get_allowed_roles())
        return any(role in allowed for role in user_roles)


class ColumnMetadata(Base):
    """Per-column dropdown and link configuration for a grid procedure."""
    __tablename__ = "ColumnMetadata"
    __table_args__ = (
        UniqueConstraint("ProcedureName", "ColumnName", name="uq_columnmetadata_procedure_column"),
    )

    id = Column("Id", Integer, primary_key=True, index=True)
    procedure_name = Column("ProcedureName", String(200), nullable=False, index=True)
    column_name = Column("ColumnName", String(200), nullable=False)
    cell_editor = Column("CellEditor", String(50))  # 'dropdown' enables dropdownConfig
    dropdown_type = Column("DropdownType", String(20))  # 'static' or 'dynamic'
    static_values_json = Column("StaticValuesJson", Text)
    master_table = Column("MasterTable", String(200))
    value_field = Column("ValueField", String(200))
    label_field = Column("LabelField", String(200))
    filter_condition = Column("FilterCondition", Text)  # e.g. "CaseNumber" = @param_CaseNumber
    depends_on_json = Column("DependsOnJson", Text)
    link_config = Column("LinkConfig", JsonColumnType)
    is_active = Column("IsActive", Boolean, nullable=False, default=True)
    created_at = Column("CreatedAt", DateTime(timezone=True), server_default=func.now())
    updated_at = Column("UpdatedAt", DateTime(timezone=True), onupdate=func.now())

    @property
    def is_dropdown(self) -> bool:
        return self.cell_editor == "dropdown"

    def get_static_values(self) -> List[Any]:
        return _load_json_list(self.static_values_json, "StaticValuesJson", self.procedure_name)

    def get_depends_on(self) -> List[str]:
        return [str(c) for c in _load_json_list(self.depends_on_json, "DependsOnJson", self.procedure_name)]

    def get_drill_down_config(self) -> Optional[dict]:
        """The drillDown section of an enabled link configuration."""
        if not self.link_config or not self.link_config.get("enabled"):
            return None
        drill_down = self.link_config.get("drillDown")
        if not drill_down or not drill_down.get("enabled"):
            return None
        return drill_down


class GridColumnState(Base):
    """Saved grid column layout per user and procedure."""
    __tablename__ = "grid_column_states"
    __table_args__ = (
        UniqueConstraint("user_id", "procedure_name", name="uq_grid_column_state_user_procedure"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    procedure_name = Column(String(200), nullable=False)
    column_state = Column(Text, nullable=False)  # JSON text as produced by the grid client
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
