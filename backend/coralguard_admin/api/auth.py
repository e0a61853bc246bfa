"""Admin login and logout"""
from fastapi import APIRouter, Depends, Request

from coralguard_admin.api.deps import (
    AuthenticatedPrincipal,
    get_auth_guard,
    get_principal,
    get_request_meta,
)
from coralguard_admin.middleware.rate_limit import get_rate_limit, limiter
from coralguard_admin.schemas.admin_account import AdminResponse, LoginRequest, LoginResponse
from coralguard_admin.schemas.common import MessageResponse
from coralguard_admin.services.audit_trail import RequestMeta
from coralguard_admin.services.auth_guard import AuthenticationGuard

router = APIRouter(prefix="/admin/auth", tags=["auth"])


@router.post("/login", response_model=LoginResponse)
@limiter.limit(get_rate_limit("login"))
def login(
    request: Request,
    data: LoginRequest,
    guard: AuthenticationGuard = Depends(get_auth_guard),
    meta: RequestMeta = Depends(get_request_meta),
):
    """
    Exchange email + password for an admin bearer token.

    Wrong email, wrong password and deactivated accounts all return the same
    401 ``INVALID_CREDENTIALS``. After 5 consecutive failures the account is
    locked for 2 hours and every attempt returns 401 ``ACCOUNT_LOCKED``.
    """
    result = guard.login(data.email, data.password, meta)
    return LoginResponse(
        admin=AdminResponse.model_validate(result.account),
        token=result.token,
        expires_in=result.expires_in,
    )


@router.post("/logout", response_model=MessageResponse)
def logout(
    principal: AuthenticatedPrincipal = Depends(get_principal),
    guard: AuthenticationGuard = Depends(get_auth_guard),
):
    """Record the logout. The token itself stays valid until it expires."""
    guard.logout(principal.account, principal.meta)
    return MessageResponse(message="Logged out")
