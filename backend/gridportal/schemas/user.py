"""
Authentication and Role Management Schemas
"""
from pydantic import BaseModel, EmailStr, Field
from typing import Optional, List
from datetime import datetime

from gridportal.schemas.base import CamelModel


class RegisterRequest(CamelModel):
    username: str = Field(..., min_length=3, max_length=100)
    password: str = Field(..., min_length=6)
    email: Optional[EmailStr] = None
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)


class LoginRequest(CamelModel):
    username: str
    password: str


class UserInfo(CamelModel):
    id: int
    username: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    roles: List[str] = []


class AuthResponse(CamelModel):
    success: bool
    message: Optional[str] = None
    token: Optional[str] = None
    token_expiration: Optional[datetime] = None
    user: Optional[UserInfo] = None


class TokenPayload(BaseModel):
    sub: int
    name: str
    roles: List[str] = []
    email: Optional[str] = None
    exp: datetime


# Role management

class CreateRoleRequest(CamelModel):
    name: str = Field(..., min_length=2, max_length=50)
    description: Optional[str] = Field(None, max_length=200)


class UpdateRoleRequest(CamelModel):
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    description: Optional[str] = Field(None, max_length=200)
    is_active: Optional[bool] = None


class RoleInfo(CamelModel):
    id: int
    name: str
    description: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None


class RoleResponse(CamelModel):
    success: bool
    message: str = ""
    role: Optional[RoleInfo] = None


class RoleListResponse(CamelModel):
    roles: List[RoleInfo] = []


class AssignRoleRequest(CamelModel):
    user_id: int
    role_id: int


class RemoveRoleRequest(CamelModel):
    user_id: int
    role_id: int


class UserRoleInfo(CamelModel):
    id: int
    username: str
    email: Optional[str] = None
    roles: List[RoleInfo] = []


class UserRoleResponse(CamelModel):
    success: bool
    message: str = ""
    user: Optional[UserRoleInfo] = None
