"""
Role Management API Routes (Admin only)
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List

from gridportal.database import get_db
from gridportal.schemas import (
    CreateRoleRequest, UpdateRoleRequest, RoleInfo, RoleResponse, RoleListResponse,
    AssignRoleRequest, RemoveRoleRequest, UserRoleInfo, UserRoleResponse
)
from gridportal.models import User, Role
from gridportal.core.rbac import require_admin
from gridportal.core.audit import AuditLogger
from gridportal.api.responses import model_response

router = APIRouter()


def to_user_role_info(user: User) -> UserRoleInfo:
    return UserRoleInfo(
        id=user.id,
        username=user.username,
        email=user.email,
        roles=[RoleInfo.model_validate(r) for r in user.roles if r.is_active]
    )


@router.get("/roles", response_model=RoleListResponse)
async def list_roles(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """List active roles."""
    roles = db.query(Role).filter(Role.is_active == True).order_by(Role.name).all()
    return RoleListResponse(roles=[RoleInfo.model_validate(r) for r in roles])


@router.post("/roles", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    request: CreateRoleRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Create a role."""
    if db.query(Role).filter(Role.name == request.name).first():
        return model_response(
            RoleResponse(success=False, message=f"Role '{request.name}' already exists"),
            status.HTTP_400_BAD_REQUEST
        )

    role = Role(name=request.name, description=request.description, is_active=True)
    db.add(role)
    db.commit()
    db.refresh(role)

    auditor = AuditLogger(db)
    auditor.log(action="role_create", user=current_user, resource_type="role", resource_id=str(role.id))

    return RoleResponse(success=True, message="Role created successfully", role=RoleInfo.model_validate(role))


@router.get("/roles/{role_id}", response_model=RoleResponse)
async def get_role(
    role_id: int,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    role = db.query(Role).filter(Role.id == role_id).first()
    if not role:
        return model_response(RoleResponse(success=False, message="Role not found"), status.HTTP_404_NOT_FOUND)

    return RoleResponse(success=True, message="Role retrieved successfully", role=RoleInfo.model_validate(role))


@router.put("/roles/{role_id}", response_model=RoleResponse)
async def update_role(
    role_id: int,
    request: UpdateRoleRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Update name, description or active flag of a role."""
    role = db.query(Role).filter(Role.id == role_id).first()
    if not role:
        return model_response(RoleResponse(success=False, message="Role not found"), status.HTTP_404_NOT_FOUND)

    if request.name and request.name != role.name:
        if db.query(Role).filter(Role.name == request.name, Role.id != role_id).first():
            return model_response(
                RoleResponse(success=False, message=f"Role name '{request.name}' is already in use"),
                status.HTTP_400_BAD_REQUEST
            )
        role.name = request.name

    if request.description is not None:
        role.description = request.description
    if request.is_active is not None:
        role.is_active = request.is_active

    db.commit()
    db.refresh(role)

    auditor = AuditLogger(db)
    auditor.log(action="role_update", user=current_user, resource_type="role", resource_id=str(role.id))

    return RoleResponse(success=True, message="Role updated successfully", role=RoleInfo.model_validate(role))


@router.delete("/roles/{role_id}", response_model=RoleResponse)
async def delete_role(
    role_id: int,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Delete a role that no user holds."""
    role = db.query(Role).filter(Role.id == role_id).first()
    if not role:
        return model_response(RoleResponse(success=False, message="Role not found"), status.HTTP_404_NOT_FOUND)

    if role.users:
        return model_response(
            RoleResponse(
                success=False,
                message=f"Cannot delete role '{role.name}' as it is assigned to {len(role.users)} user(s)"
            ),
            status.HTTP_400_BAD_REQUEST
        )

    db.delete(role)
    db.commit()

    auditor = AuditLogger(db)
    auditor.log(action="role_delete", user=current_user, resource_type="role", resource_id=str(role_id))

    return RoleResponse(success=True, message="Role deleted successfully")


@router.get("/users", response_model=List[UserRoleInfo])
async def list_users_with_roles(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Active users with their active roles."""
    users = db.query(User).filter(User.is_active == True).order_by(User.username).all()
    return [to_user_role_info(u) for u in users]


@router.get("/users/{user_id}/roles", response_model=UserRoleResponse)
async def get_user_roles(
    user_id: int,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        return model_response(UserRoleResponse(success=False, message="User not found"), status.HTTP_404_NOT_FOUND)

    return UserRoleResponse(success=True, message="User roles retrieved successfully", user=to_user_role_info(user))


@router.post("/assign", response_model=UserRoleResponse)
async def assign_role(
    request: AssignRoleRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Grant a role to a user."""
    user = db.query(User).filter(User.id == request.user_id).first()
    if not user:
        return model_response(UserRoleResponse(success=False, message="User not found"), status.HTTP_404_NOT_FOUND)

    role = db.query(Role).filter(Role.id == request.role_id).first()
    if not role:
        return model_response(UserRoleResponse(success=False, message="Role not found"), status.HTTP_404_NOT_FOUND)

    if role in user.roles:
        return model_response(
            UserRoleResponse(success=False, message=f"User already has the '{role.name}' role"),
            status.HTTP_400_BAD_REQUEST
        )

    user.roles.append(role)
    db.commit()
    db.refresh(user)

    auditor = AuditLogger(db)
    auditor.log(
        action="role_assign",
        user=current_user,
        resource_type="user",
        resource_id=str(user.id),
        details={"role": role.name}
    )

    return UserRoleResponse(
        success=True,
        message=f"Role '{role.name}' assigned successfully",
        user=to_user_role_info(user)
    )


@router.post("/remove", response_model=UserRoleResponse)
async def remove_role(
    request: RemoveRoleRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Revoke a role from a user."""
    user = db.query(User).filter(User.id == request.user_id).first()
    if not user:
        return model_response(UserRoleResponse(success=False, message="User not found"), status.HTTP_404_NOT_FOUND)

    role = db.query(Role).filter(Role.id == request.role_id).first()
    if not role:
        return model_response(UserRoleResponse(success=False, message="Role not found"), status.HTTP_404_NOT_FOUND)

    if role not in user.roles:
        return model_response(
            UserRoleResponse(success=False, message=f"User does not have the '{role.name}' role"),
            status.HTTP_404_NOT_FOUND
        )

    user.roles.remove(role)
    db.commit()
    db.refresh(user)

    auditor = AuditLogger(db)
    auditor.log(
        action="role_remove",
        user=current_user,
        resource_type="user",
        resource_id=str(user.id),
        details={"role": role.name}
    )

    return UserRoleResponse(
        success=True,
        message=f"Role '{role.name}' removed successfully",
        user=to_user_role_info(user)
    )
