"""Admin account management endpoints"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status

from coralguard_admin.api.deps import AuthenticatedPrincipal, get_admin_service, require_permissions
from coralguard_admin.config import settings
from coralguard_admin.middleware.rate_limit import get_rate_limit, limiter
from coralguard_admin.schemas.admin_account import (
    AdminListResponse,
    AdminRegisterRequest,
    AdminResponse,
    AdminStatusRequest,
    AdminUpdateRequest,
)
from coralguard_admin.services.admin_accounts import AdminAccountService
from coralguard_admin.services.permission_catalog import Permission

router = APIRouter(prefix="/admin", tags=["admins"])

_admin_management = require_permissions(Permission.ADMIN_MANAGEMENT)
_user_management = require_permissions(Permission.USER_MANAGEMENT)


@router.post("/register", response_model=AdminResponse, status_code=201)
@limiter.limit(get_rate_limit("register"))
def register_admin(
    request: Request,
    data: AdminRegisterRequest,
    principal: AuthenticatedPrincipal = Depends(_admin_management),
    service: AdminAccountService = Depends(get_admin_service),
):
    """
    Create an admin account (admin_management).

    Permissions and admin level default to the role's. Only a super_admin may
    create another super_admin or an account at or above its own level.
    """
    return service.register(data, principal.account, principal.meta)


@router.get("", response_model=AdminListResponse)
def list_admins(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=settings.MAX_PAGE_SIZE),
    role: Optional[str] = Query(None, description="Filter by admin role"),
    is_active: Optional[bool] = Query(None, description="Filter by active flag"),
    search: Optional[str] = Query(None, description="Match name, email or department"),
    principal: AuthenticatedPrincipal = Depends(_admin_management),
    service: AdminAccountService = Depends(get_admin_service),
):
    result = service.list_admins(page=page, limit=limit, role=role, is_active=is_active, search=search)
    return AdminListResponse(
        admins=[AdminResponse.model_validate(a) for a in result.items],
        pagination=result.pagination(),
    )


@router.get("/{admin_id}", response_model=AdminResponse)
def get_admin(
    admin_id: str,
    principal: AuthenticatedPrincipal = Depends(_admin_management),
    service: AdminAccountService = Depends(get_admin_service),
):
    return service.get_admin(admin_id)


@router.put("/{admin_id}", response_model=AdminResponse)
def update_admin(
    admin_id: str,
    data: AdminUpdateRequest,
    principal: AuthenticatedPrincipal = Depends(_admin_management),
    service: AdminAccountService = Depends(get_admin_service),
):
    """Edit another admin. The caller must sit above the target in the hierarchy."""
    return service.update_admin(admin_id, data, principal.account, principal.meta)


@router.patch("/{admin_id}/status", response_model=AdminResponse)
def set_admin_status(
    admin_id: str,
    data: AdminStatusRequest,
    principal: AuthenticatedPrincipal = Depends(_user_management),
    service: AdminAccountService = Depends(get_admin_service),
):
    """Activate or deactivate an admin (user_management). Your own account is refused."""
    return service.set_status(admin_id, data.is_active, principal.account, principal.meta)


@router.delete("/{admin_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_admin(
    admin_id: str,
    principal: AuthenticatedPrincipal = Depends(_admin_management),
    service: AdminAccountService = Depends(get_admin_service),
):
    """Permanently delete an admin. Needs full_access; your own account is refused."""
    service.delete_admin(admin_id, principal.account, principal.meta)
    return None
