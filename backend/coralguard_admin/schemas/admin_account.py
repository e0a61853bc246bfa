"""AdminAccount schemas"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field

from coralguard_admin.schemas.common import Pagination
from coralguard_admin.services.permission_catalog import AccessLevel, AdminRole, Permission


class LoginRequest(BaseModel):
    # Plain str: a malformed email must fail like any other bad credential
    email: str
    password: str


class AdminResponse(BaseModel):
    admin_id: str
    name: str
    email: str
    role: str
    admin_level: int
    access_level: str
    permissions: List[str]
    is_active: bool
    is_verified: bool
    department: Optional[str] = None
    phone: Optional[str] = None
    last_login: Optional[datetime] = None
    lock_until: Optional[datetime] = None
    created_by: Optional[str] = None
    managed_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class LoginResponse(BaseModel):
    admin: AdminResponse
    token: str
    token_type: str = "bearer"
    expires_in: int


class AdminRegisterRequest(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    role: AdminRole = Field(AdminRole.MODERATOR, description="Administrative role")
    admin_level: Optional[int] = Field(None, ge=1, le=10, description="Defaults to the role's level")
    access_level: AccessLevel = AccessLevel.READ
    permissions: Optional[List[Permission]] = Field(None, description="Defaults to the role's permissions")
    department: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=50)
    managed_by: Optional[str] = None


class AdminUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    email: Optional[EmailStr] = None
    role: Optional[AdminRole] = None
    admin_level: Optional[int] = Field(None, ge=1, le=10)
    access_level: Optional[AccessLevel] = None
    permissions: Optional[List[Permission]] = None
    department: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=50)
    is_verified: Optional[bool] = None
    managed_by: Optional[str] = None


class AdminStatusRequest(BaseModel):
    is_active: bool = Field(..., alias="isActive")

    class Config:
        populate_by_name = True


class ProfileUpdateRequest(BaseModel):
    """Only these fields are self-editable; role and permissions are not."""

    name: Optional[str] = Field(None, min_length=2, max_length=100)
    department: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=50)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., alias="currentPassword")
    new_password: str = Field(..., alias="newPassword")

    class Config:
        populate_by_name = True


class AdminListResponse(BaseModel):
    admins: List[AdminResponse]
    pagination: Pagination
