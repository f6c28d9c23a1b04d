"""
Core Module
"""
from gridportal.core.auth import (
    create_access_token, verify_token, authenticate_user,
    get_user_by_id, get_user_by_username,
    register_user, login_user, refresh_access_token
)
from gridportal.core.rbac import (
    get_current_user, require_roles, require_admin,
    PermissionDeniedError, UnauthorizedError, initialize_rbac
)
from gridportal.core.audit import AuditLogger
