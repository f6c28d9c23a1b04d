"""
Pydantic Schemas
"""
from gridportal.schemas.base import CamelModel
from gridportal.schemas.user import (
    RegisterRequest, LoginRequest, UserInfo, AuthResponse, TokenPayload,
    CreateRoleRequest, UpdateRoleRequest, RoleInfo, RoleResponse, RoleListResponse,
    AssignRoleRequest, RemoveRoleRequest, UserRoleInfo, UserRoleResponse
)
from gridportal.schemas.grid import (
    GridDataRequest, GridDataResponse, ColumnDefinition,
    RowUpdateRequest, RowUpdateResponse, RowDeleteRequest, RowDeleteResponse,
    RowCreateRequest, RowCreateResponse, StoredProcedureInfo,
    SaveColumnStateRequest, ColumnStateResponse, DropdownValuesRequest, DropdownOption,
    DrillDownLevelModel, DrillDownStateModel, DrillDownRequest, DrillDownResponse,
    DrillDownSettings
)
from gridportal.schemas.registry import (
    ProcedureRegistrationRequest, ProcedureUpdateRequest,
    ColumnMetadataItem, ColumnMetadataResponse,
    ScaffoldRequest, ScaffoldStepResult, ScaffoldResponse
)
