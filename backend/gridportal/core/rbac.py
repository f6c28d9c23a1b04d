"""
Role-Based Access Control (RBAC) Service
"""
from typing import List, Optional
from fastapi import HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
import structlog

from gridportal.database import get_db
from gridportal.models import User, Role
from gridportal.core.auth import verify_token, get_user_by_id

logger = structlog.get_logger()

security = HTTPBearer(auto_error=False)


class PermissionDeniedError(HTTPException):
    """Permission denied exception."""
    def __init__(self, detail: str = "Permission denied"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class UnauthorizedError(HTTPException):
    """Unauthorized exception."""
    def __init__(self, detail: str = "Not authenticated"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"}
        )


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """Get current authenticated user from JWT token."""
    if credentials is None:
        raise UnauthorizedError()

    payload = verify_token(credentials.credentials)
    if not payload:
        raise UnauthorizedError("Invalid or expired token")

    user = get_user_by_id(db, payload.sub)
    if not user:
        raise UnauthorizedError("User not found")

    if not user.is_active:
        raise UnauthorizedError("User account is disabled")

    return user


def require_roles(*role_names: str):
    """Dependency factory: the current user must hold at least one of the roles."""
    async def checker(current_user: User = Depends(get_current_user)) -> User:
        user_roles = current_user.get_role_names()
        if not any(role in user_roles for role in role_names):
            logger.warning(
                "role_check_failed",
                user_id=current_user.id,
                required=list(role_names),
                actual=user_roles
            )
            raise PermissionDeniedError(f"One of roles {list(role_names)} required")
        return current_user
    return checker


require_admin = require_roles("Admin")


DEFAULT_ROLES = [
    {"name": "Admin", "description": "Full system administrator"},
    {"name": "Manager", "description": "Can view and edit grid data"},
    {"name": "User", "description": "Standard grid user"},
]


def initialize_rbac(db: Session) -> List[Role]:
    """Create the default roles if they do not exist."""
    created = []
    for role_data in DEFAULT_ROLES:
        existing = db.query(Role).filter(Role.name == role_data["name"]).first()
        if not existing:
            role = Role(name=role_data["name"], description=role_data["description"], is_active=True)
            db.add(role)
            created.append(role)

    db.commit()
    if created:
        logger.info("default_roles_created", roles=[r.name for r in created])
    return created
