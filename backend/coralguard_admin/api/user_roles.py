"""User role management endpoints: role changes, role history, directory"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request

from coralguard_admin.api.deps import (
    AuthenticatedPrincipal,
    get_audit_trail,
    get_permission_engine,
    get_principal,
    get_role_change_coordinator,
    get_user_role_directory,
    require_permissions,
)
from coralguard_admin.config import settings
from coralguard_admin.middleware.rate_limit import get_rate_limit, limiter
from coralguard_admin.schemas.common import ChainVerifyResponse
from coralguard_admin.schemas.user_role import (
    BulkRoleChangeRequest,
    BulkRoleChangeResponse,
    RoleChangeRequest,
    RoleChangeResponse,
    RoleHistoryListResponse,
    RoleHistoryResponse,
    RoleStatsResponse,
    RoleTemplateResponse,
    SubscriptionUpdateRequest,
    UserRoleResponse,
    UsersByRoleResponse,
)
from coralguard_admin.services.audit_trail import AuditTrail
from coralguard_admin.services.permission_engine import PermissionEngine
from coralguard_admin.services.permission_catalog import Permission
from coralguard_admin.services.role_changes import RoleChangeCoordinator
from coralguard_admin.services.user_roles import UserRoleDirectory

router = APIRouter(prefix="/admin/users", tags=["user-roles"])

_user_management = require_permissions(Permission.USER_MANAGEMENT)
_security_management = require_permissions(Permission.SECURITY_MANAGEMENT)
_analytics_view = require_permissions(Permission.ANALYTICS_VIEW)


# ---------------------------------------------------------------------------
# Role changes
# ---------------------------------------------------------------------------

@router.post("/bulk-change-roles", response_model=BulkRoleChangeResponse)
@limiter.limit(get_rate_limit("bulk_change_roles"))
def bulk_change_roles(
    request: Request,
    data: BulkRoleChangeRequest,
    principal: AuthenticatedPrincipal = Depends(_user_management),
    coordinator: RoleChangeCoordinator = Depends(get_role_change_coordinator),
):
    """
    Give many users the same role (user_management).

    The batch is rejected outright if the caller could not make this change
    for any user. Otherwise every id is attempted; per-user failures are
    listed under ``failed`` and never stop the rest.
    """
    result = coordinator.bulk_change_role(
        data.user_ids,
        data.new_role,
        data.reason,
        principal.account,
        permissions=data.permissions,
        notify=data.notify_users,
        meta=principal.meta,
    )
    return BulkRoleChangeResponse.model_validate(result)


@router.post("/{user_id}/change-role", response_model=RoleChangeResponse)
def change_role(
    user_id: str,
    data: RoleChangeRequest,
    principal: AuthenticatedPrincipal = Depends(_user_management),
    coordinator: RoleChangeCoordinator = Depends(get_role_change_coordinator),
):
    """
    Change one user's role (user_management).

    ``reason`` must be at least 10 characters. Permissions default to the new
    role's. A failed history write or notification does not fail the call.
    """
    outcome = coordinator.change_role(
        user_id,
        data.new_role,
        data.reason,
        principal.account,
        permissions=data.permissions,
        notify=data.notify_user,
        meta=principal.meta,
    )
    return RoleChangeResponse.model_validate(outcome)


# ---------------------------------------------------------------------------
# Role history
# ---------------------------------------------------------------------------

@router.get("/role-history", response_model=RoleHistoryListResponse)
def list_role_history(
    user_id: Optional[str] = Query(None, description="Filter by subject user"),
    changed_by: Optional[str] = Query(None, description="Filter by acting admin"),
    new_role: Optional[str] = Query(None, description="Filter by assigned role"),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    principal: AuthenticatedPrincipal = Depends(_security_management),
    audit: AuditTrail = Depends(get_audit_trail),
):
    result = audit.query_role_history(
        user_id=user_id, changed_by=changed_by, new_role=new_role, page=page, limit=limit
    )
    return RoleHistoryListResponse(
        history=[RoleHistoryResponse.model_validate(r) for r in result.items],
        pagination=result.pagination(),
    )


@router.get("/role-history/verify", response_model=ChainVerifyResponse)
def verify_role_history(
    principal: AuthenticatedPrincipal = Depends(_security_management),
    audit: AuditTrail = Depends(get_audit_trail),
):
    """Recompute the role-history hash chain and report the first broken row."""
    check = audit.verify_role_history_chain()
    return ChainVerifyResponse(
        ledger="role_history",
        valid=check.valid,
        total_entries=check.total_entries,
        broken_at=check.broken_at,
    )


@router.get("/{user_id}/role-history", response_model=RoleHistoryListResponse)
def get_user_role_history(
    user_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    principal: AuthenticatedPrincipal = Depends(_security_management),
    audit: AuditTrail = Depends(get_audit_trail),
):
    result = audit.query_role_history(user_id=user_id, page=page, limit=limit)
    return RoleHistoryListResponse(
        history=[RoleHistoryResponse.model_validate(r) for r in result.items],
        pagination=result.pagination(),
    )


# ---------------------------------------------------------------------------
# Directory
# ---------------------------------------------------------------------------

@router.get("/role-stats", response_model=RoleStatsResponse)
def role_stats(
    principal: AuthenticatedPrincipal = Depends(_analytics_view),
    directory: UserRoleDirectory = Depends(get_user_role_directory),
    engine: PermissionEngine = Depends(get_permission_engine),
):
    # Role history rows are security_management data
    stats = directory.role_stats(
        include_recent=engine.authorize(principal.account, [Permission.SECURITY_MANAGEMENT])
    )
    stats["recent_role_changes"] = [RoleHistoryResponse.model_validate(r) for r in stats["recent_role_changes"]]
    return RoleStatsResponse(**stats)


@router.get("/role-templates", response_model=List[RoleTemplateResponse])
def role_templates(
    principal: AuthenticatedPrincipal = Depends(get_principal),
    directory: UserRoleDirectory = Depends(get_user_role_directory),
):
    return directory.role_templates()


@router.get("/by-role/{role}", response_model=UsersByRoleResponse)
def users_by_role(
    role: str,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    principal: AuthenticatedPrincipal = Depends(_user_management),
    directory: UserRoleDirectory = Depends(get_user_role_directory),
):
    result = directory.users_by_role(role, page=page, limit=limit)
    return UsersByRoleResponse(
        role=role,
        users=[UserRoleResponse.model_validate(u) for u in result.items],
        pagination=result.pagination(),
    )


@router.put("/{user_id}/subscription", response_model=UserRoleResponse)
def update_subscription(
    user_id: str,
    data: SubscriptionUpdateRequest,
    principal: AuthenticatedPrincipal = Depends(_user_management),
    directory: UserRoleDirectory = Depends(get_user_role_directory),
):
    return directory.update_subscription(user_id, data.subscription, principal.account, principal.meta)
