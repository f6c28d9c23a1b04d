"""
Registry Administration and Scaffolding Schemas
"""
from pydantic import Field
from typing import Optional, List, Dict, Any
from datetime import datetime

from gridportal.schemas.base import CamelModel


class ProcedureRegistrationRequest(CamelModel):
    procedure_name: str = Field(..., max_length=200)
    display_name: str = Field(..., max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    category: Optional[str] = Field(None, max_length=50)
    database_name: Optional[str] = Field(None, max_length=100)
    client_id: Optional[int] = None
    is_active: bool = True
    requires_auth: bool = True
    allowed_roles: List[str] = []
    cache_duration_seconds: Optional[int] = None
    default_page_size: int = Field(15, ge=1)
    max_page_size: int = Field(1000, ge=1)


class ProcedureUpdateRequest(CamelModel):
    display_name: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    category: Optional[str] = Field(None, max_length=50)
    database_name: Optional[str] = Field(None, max_length=100)
    is_active: Optional[bool] = None
    requires_auth: Optional[bool] = None
    allowed_roles: Optional[List[str]] = None
    cache_duration_seconds: Optional[int] = None
    default_page_size: Optional[int] = Field(None, ge=1)
    max_page_size: Optional[int] = Field(None, ge=1)


class ColumnMetadataItem(CamelModel):
    column_name: str = Field(..., max_length=200)
    cell_editor: Optional[str] = None
    dropdown_type: Optional[str] = None
    static_values: Optional[List[Any]] = None
    master_table: Optional[str] = None
    value_field: Optional[str] = None
    label_field: Optional[str] = None
    filter_condition: Optional[str] = None
    depends_on: Optional[List[str]] = None
    link_config: Optional[Dict[str, Any]] = None
    is_active: bool = True


class ColumnMetadataResponse(ColumnMetadataItem):
    id: int
    procedure_name: str
    updated_at: Optional[datetime] = None


class ScaffoldRequest(CamelModel):
    table_name: str
    entity_name: str
    display_name: str
    database_name: Optional[str] = None
    display_columns: Optional[List[str]] = None
    editable_columns: Optional[List[str]] = None
    allowed_roles: List[str] = ["Admin", "Manager", "User"]
    operations: List[str] = ["fetch", "insert", "update", "delete"]
    auto_register: bool = Field(True, alias="register")


class ScaffoldStepResult(CamelModel):
    step: str
    procedure_name: Optional[str] = None
    status: str  # 'created', 'failed', 'skipped'
    message: Optional[str] = None


class ScaffoldResponse(CamelModel):
    success: bool
    table_name: str
    entity_name: str
    primary_keys: List[str] = []
    display_columns: List[str] = []
    editable_columns: List[str] = []
    steps: List[ScaffoldStepResult] = []
    registration_sql: Optional[str] = None
    registered: bool = False
    report: str = ""
