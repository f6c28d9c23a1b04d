"""
Dynamic Grid Schemas
"""
from pydantic import Field, model_validator
from typing import Optional, List, Dict, Any, Literal

from gridportal.schemas.base import CamelModel


class GridDataRequest(CamelModel):
    procedure_name: str
    page_number: int = Field(1, ge=1)
    page_size: int = Field(15, ge=1)
    start_row: Optional[int] = Field(None, ge=1)
    end_row: Optional[int] = Field(None, ge=1)
    sort_column: Optional[str] = None
    sort_direction: str = "ASC"
    filter_json: Optional[str] = None
    drill_down_json: Optional[str] = None
    search_term: Optional[str] = None


class ColumnDefinition(CamelModel):
    field: str
    header_name: Optional[str] = None
    type: str = "string"
    width: Optional[int] = None
    sortable: bool = True
    filter: Any = True
    editable: bool = False
    cell_editor: Optional[str] = None
    cell_editor_params: Optional[Dict[str, Any]] = None
    column_group: Optional[str] = None
    column_group_show: Optional[str] = None
    pinned: Any = None
    custom_properties: Optional[Dict[str, Any]] = None
    dropdown_config: Optional[Dict[str, Any]] = None
    link_config: Optional[Dict[str, Any]] = None

    class Config:
        extra = "allow"


class GridDataResponse(CamelModel):
    rows: List[Dict[str, Any]] = []
    columns: List[ColumnDefinition] = []
    total_count: int = 0
    page_number: int = 1
    page_size: int = 15
    total_pages: int = 0
    last_row: int = 0
    metadata: Dict[str, Any] = {}


class RowUpdateRequest(CamelModel):
    procedure_name: str
    row_id: Any
    changes: Dict[str, Any]


class RowUpdateResponse(CamelModel):
    success: bool
    message: Optional[str] = None
    updated_row: Optional[Dict[str, Any]] = None
    error_code: Optional[str] = None
    rows_affected: Optional[int] = None


class RowDeleteRequest(CamelModel):
    procedure_name: str
    row_id: Any


class RowDeleteResponse(CamelModel):
    success: bool
    message: Optional[str] = None
    error_code: Optional[str] = None
    rows_affected: Optional[int] = None


class RowCreateRequest(CamelModel):
    procedure_name: str
    field_values: Dict[str, Any]


class RowCreateResponse(CamelModel):
    success: bool
    message: Optional[str] = None
    created_row: Optional[Dict[str, Any]] = None
    error_code: Optional[str] = None


class StoredProcedureInfo(CamelModel):
    id: int
    procedure_name: str
    display_name: str
    description: Optional[str] = None
    category: Optional[str] = None
    database_name: Optional[str] = None
    is_active: bool
    requires_auth: bool
    allowed_roles: List[str] = []
    default_page_size: int
    max_page_size: int


class SaveColumnStateRequest(CamelModel):
    procedure_name: str
    column_state: str


class ColumnStateResponse(CamelModel):
    column_state: Optional[str] = None


class DropdownValuesRequest(CamelModel):
    procedure_name: str
    master_table: str
    value_field: str
    label_field: str
    column_name: Optional[str] = None
    filter_condition: Optional[str] = None
    row_context: Optional[Dict[str, Any]] = None


class DropdownOption(CamelModel):
    value: Any
    label: str


class DrillDownLevelModel(CamelModel):
    procedure_name: str
    display_name: str
    filters: Dict[str, Any] = {}
    breadcrumb_label: str


class DrillDownStateModel(CamelModel):
    levels: List[DrillDownLevelModel] = []
    current_level: int = 0
    is_stateless: bool = False

    @model_validator(mode="after")
    def check_current_level(self):
        if not self.levels:
            if self.current_level != 0:
                raise ValueError("currentLevel must be 0 when there are no levels")
        elif not 0 <= self.current_level < len(self.levels):
            raise ValueError(f"currentLevel must be between 0 and {len(self.levels) - 1}")
        return self


class DrillDownRequest(CamelModel):
    action: Literal["drill", "back", "level", "reset"] = "drill"
    base_procedure: str
    state: Optional[DrillDownStateModel] = None
    query_params: Optional[Dict[str, str]] = None
    column_name: Optional[str] = None
    row_data: Dict[str, Any] = {}
    level_index: Optional[int] = None


class DrillDownResponse(CamelModel):
    changed: bool
    state: DrillDownStateModel
    query_params: Dict[str, str] = {}
    current_procedure: str
    drill_down_json: Optional[str] = None
    max_depth: int


class DrillDownSettings(CamelModel):
    enable_unlimited_drill_down: bool
    default_max_depth: int
