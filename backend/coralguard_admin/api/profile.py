"""The calling admin's own profile"""
from typing import Any, Dict

from fastapi import APIRouter, Depends

from coralguard_admin.api.deps import AuthenticatedPrincipal, get_admin_service, get_principal
from coralguard_admin.schemas.admin_account import AdminResponse, ChangePasswordRequest, ProfileUpdateRequest
from coralguard_admin.schemas.common import MessageResponse
from coralguard_admin.services.account_rules import capabilities
from coralguard_admin.services.admin_accounts import AdminAccountService

router = APIRouter(prefix="/admin/profile", tags=["profile"])


@router.get("", response_model=AdminResponse)
def get_profile(principal: AuthenticatedPrincipal = Depends(get_principal)):
    return principal.account


@router.put("", response_model=AdminResponse)
def update_profile(
    data: ProfileUpdateRequest,
    principal: AuthenticatedPrincipal = Depends(get_principal),
    service: AdminAccountService = Depends(get_admin_service),
):
    """Update name, phone or department. Role and permissions are not self-editable."""
    return service.update_profile(principal.account, data, principal.meta)


@router.get("/capabilities")
def get_capabilities(principal: AuthenticatedPrincipal = Depends(get_principal)) -> Dict[str, Any]:
    """What the console should let this admin do."""
    return capabilities(principal.account)


@router.post("/change-password", response_model=MessageResponse)
def change_password(
    data: ChangePasswordRequest,
    principal: AuthenticatedPrincipal = Depends(get_principal),
    service: AdminAccountService = Depends(get_admin_service),
):
    service.change_password(principal.account, data.current_password, data.new_password, principal.meta)
    return MessageResponse(message="Password changed")
