"""
Database Models
"""
from gridportal.models.user import User, Role, user_roles
from gridportal.models.registry import StoredProcedureRegistry, ColumnMetadata, GridColumnState
from gridportal.models.audit import AuditLog

__all__ = [
    "User", "Role", "user_roles",
    "StoredProcedureRegistry", "ColumnMetadata", "GridColumnState",
    "AuditLog",
]
