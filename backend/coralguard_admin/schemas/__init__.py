"""Pydantic schemas for request/response validation"""
from coralguard_admin.schemas.activity_log import ActivityLogListResponse, ActivityLogResponse
from coralguard_admin.schemas.admin_account import (
    AdminListResponse,
    AdminRegisterRequest,
    AdminResponse,
    AdminUpdateRequest,
    LoginRequest,
    LoginResponse,
)
from coralguard_admin.schemas.common import ChainVerifyResponse, Pagination
from coralguard_admin.schemas.user_role import (
    BulkRoleChangeRequest,
    BulkRoleChangeResponse,
    RoleChangeRequest,
    RoleChangeResponse,
    RoleHistoryResponse,
)

__all__ = [
    "ActivityLogListResponse",
    "ActivityLogResponse",
    "AdminListResponse",
    "AdminRegisterRequest",
    "AdminResponse",
    "AdminUpdateRequest",
    "LoginRequest",
    "LoginResponse",
    "ChainVerifyResponse",
    "Pagination",
    "BulkRoleChangeRequest",
    "BulkRoleChangeResponse",
    "RoleChangeRequest",
    "RoleChangeResponse",
    "RoleHistoryResponse",
]
