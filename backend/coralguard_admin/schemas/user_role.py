"""User role management schemas.

Request bodies use the camelCase keys the admin console sends (``newRole``,
``notifyUser``, ``userIds``); snake_case names are accepted too.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from coralguard_admin.schemas.common import Pagination


class RoleChangeRequest(BaseModel):
    new_role: str = Field(..., alias="newRole")
    permissions: Optional[List[str]] = Field(None, description="Defaults to the role's permissions")
    reason: str = Field("", description="Why the role is changing (10+ characters)")
    notify_user: bool = Field(True, alias="notifyUser")

    class Config:
        populate_by_name = True


class BulkRoleChangeRequest(BaseModel):
    user_ids: List[str] = Field(default_factory=list, alias="userIds")
    new_role: str = Field(..., alias="newRole")
    permissions: Optional[List[str]] = None
    reason: str = ""
    notify_users: bool = Field(True, alias="notifyUsers")

    class Config:
        populate_by_name = True


class SubscriptionUpdateRequest(BaseModel):
    subscription: str = Field(..., description="free | basic | premium | enterprise")


class UserRoleResponse(BaseModel):
    user_id: str
    name: str
    email: str
    role: str
    permissions: List[str]
    subscription: Optional[str] = None
    is_active: bool
    role_changed_by: Optional[str] = None
    role_changed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class RoleChangeResponse(BaseModel):
    user: UserRoleResponse
    previous_role: str
    new_role: str
    previous_permissions: List[str]
    new_permissions: List[str]
    history_id: Optional[str] = None
    notification_sent: bool = False

    class Config:
        from_attributes = True


class BulkItemFailureResponse(BaseModel):
    user_id: str
    code: str
    message: str

    class Config:
        from_attributes = True


class BulkRoleChangeResponse(BaseModel):
    successful: List[RoleChangeResponse]
    failed: List[BulkItemFailureResponse]
    total: int

    class Config:
        from_attributes = True


class RoleHistoryResponse(BaseModel):
    history_id: str
    user_id: str
    previous_role: str
    new_role: str
    previous_permissions: List[str]
    new_permissions: List[str]
    reason: str
    changed_by: str
    changed_at: datetime
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    notification_sent: bool
    previous_hash: str = ""

    class Config:
        from_attributes = True

    @model_validator(mode='before')
    @classmethod
    def map_log_metadata(cls, data):
        """Map log_metadata attribute to metadata field"""
        if hasattr(data, '__dict__') and hasattr(data, 'log_metadata'):
            return {
                'history_id': data.history_id,
                'user_id': data.user_id,
                'previous_role': data.previous_role,
                'new_role': data.new_role,
                'previous_permissions': data.previous_permissions or [],
                'new_permissions': data.new_permissions or [],
                'reason': data.reason,
                'changed_by': data.changed_by,
                'changed_at': data.changed_at,
                'ip_address': data.ip_address,
                'user_agent': data.user_agent,
                'metadata': data.log_metadata,
                'notification_sent': data.notification_sent,
                'previous_hash': data.previous_hash or '',
            }
        return data


class RoleHistoryListResponse(BaseModel):
    history: List[RoleHistoryResponse]
    pagination: Pagination


class UsersByRoleResponse(BaseModel):
    role: str
    users: List[UserRoleResponse]
    pagination: Pagination


class RoleStatsResponse(BaseModel):
    total_users: int
    active_users: int
    users_by_role: Dict[str, int]
    users_by_subscription: Dict[str, int]
    recent_role_changes: List[RoleHistoryResponse]


class RoleTemplateResponse(BaseModel):
    role: str
    display_name: str
    description: str
    default_permissions: List[str]
    features: List[str]
    limitations: List[str]
    subscription_required: bool
