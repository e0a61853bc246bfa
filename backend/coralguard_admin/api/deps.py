"""API dependencies for authentication, authorization and service wiring.

Auth
----
Every admin route takes ``Authorization: Bearer <JWT>``. The token must carry
``type == "admin"`` and ``aud == "admin"``; ordinary user tokens are refused.
The account is re-loaded on every request and handed to the route as an
:class:`AuthenticatedPrincipal`, never cached between requests.

Use :func:`get_principal` for routes that only need an authenticated admin and
:func:`require_permissions` for permission-gated routes. Any one of the listed
permissions is sufficient; super admins always pass.

Singletons
----------
The token signer, password hasher, notifier, diagnostics sink and stateless
rule objects are built once per process. Tests swap them through
``app.dependency_overrides``.
"""
from functools import lru_cache
from typing import Callable, NamedTuple, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from coralguard_admin.config import settings
from coralguard_admin.database import get_db
from coralguard_admin.errors import AUTH_REQUIRED, AuthenticationError
from coralguard_admin.models.admin_account import AdminAccount
from coralguard_admin.services.admin_accounts import AdminAccountService
from coralguard_admin.services.audit_trail import AuditTrail, RequestMeta
from coralguard_admin.services.auth_guard import AuthenticationGuard
from coralguard_admin.services.permission_catalog import Permission
from coralguard_admin.services.permission_engine import PermissionEngine
from coralguard_admin.services.role_changes import RoleChangeCoordinator
from coralguard_admin.services.role_transitions import RoleTransitionValidator
from coralguard_admin.services.user_roles import UserRoleDirectory
from coralguard_admin.utils.clock import Clock, utcnow
from coralguard_admin.utils.diagnostics import DiagnosticsSink
from coralguard_admin.utils.jwt_utils import TokenSigner
from coralguard_admin.utils.passwords import PasswordHasher
from coralguard_admin.utils.webhook import WebhookNotifier

_bearer_scheme = HTTPBearer(auto_error=False)


# ---------------------------------------------------------------------------
# Process-wide collaborators
# ---------------------------------------------------------------------------

@lru_cache()
def get_token_signer() -> TokenSigner:
    return TokenSigner(
        private_key_pem=settings.JWT_PRIVATE_KEY,
        algorithm=settings.JWT_ALGORITHM,
        key_id=settings.JWT_KEY_ID,
    )


@lru_cache()
def get_password_hasher() -> PasswordHasher:
    return PasswordHasher(rounds=settings.BCRYPT_ROUNDS)


@lru_cache()
def get_notifier() -> WebhookNotifier:
    return WebhookNotifier(
        url=settings.NOTIFY_WEBHOOK_URL,
        secret=settings.NOTIFY_WEBHOOK_SECRET,
        timeout=settings.NOTIFY_TIMEOUT_SECONDS,
    )


@lru_cache()
def get_diagnostics() -> DiagnosticsSink:
    return DiagnosticsSink()


@lru_cache()
def get_permission_engine() -> PermissionEngine:
    return PermissionEngine()


@lru_cache()
def get_transition_validator() -> RoleTransitionValidator:
    return RoleTransitionValidator()


def get_clock() -> Clock:
    return utcnow


# ---------------------------------------------------------------------------
# Per-request services
# ---------------------------------------------------------------------------

def get_request_meta(request: Request) -> RequestMeta:
    """Caller IP and user agent for audit rows."""
    ip = request.client.host if request.client else None
    if settings.TRUST_PROXY_HEADERS:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            ip = forwarded.split(",")[0].strip()
    return RequestMeta(ip_address=ip, user_agent=request.headers.get("user-agent"))


def get_audit_trail(
    db: Session = Depends(get_db),
    diagnostics: DiagnosticsSink = Depends(get_diagnostics),
    clock: Clock = Depends(get_clock),
) -> AuditTrail:
    return AuditTrail(db, diagnostics, clock)


def get_auth_guard(
    db: Session = Depends(get_db),
    signer: TokenSigner = Depends(get_token_signer),
    hasher: PasswordHasher = Depends(get_password_hasher),
    audit: AuditTrail = Depends(get_audit_trail),
    clock: Clock = Depends(get_clock),
) -> AuthenticationGuard:
    return AuthenticationGuard(
        db,
        signer,
        hasher,
        audit,
        clock=clock,
        max_attempts=settings.LOGIN_MAX_ATTEMPTS,
        lockout_seconds=settings.LOGIN_LOCKOUT_SECONDS,
        token_ttl=settings.JWT_ADMIN_EXPIRE_SECONDS,
    )


def get_role_change_coordinator(
    db: Session = Depends(get_db),
    audit: AuditTrail = Depends(get_audit_trail),
    validator: RoleTransitionValidator = Depends(get_transition_validator),
    notifier: WebhookNotifier = Depends(get_notifier),
    diagnostics: DiagnosticsSink = Depends(get_diagnostics),
    clock: Clock = Depends(get_clock),
) -> RoleChangeCoordinator:
    return RoleChangeCoordinator(
        db,
        audit,
        validator,
        notifier,
        diagnostics,
        clock=clock,
        reason_min_length=settings.ROLE_CHANGE_REASON_MIN_LENGTH,
    )


def get_admin_service(
    db: Session = Depends(get_db),
    hasher: PasswordHasher = Depends(get_password_hasher),
    audit: AuditTrail = Depends(get_audit_trail),
    engine: PermissionEngine = Depends(get_permission_engine),
) -> AdminAccountService:
    return AdminAccountService(
        db,
        hasher,
        audit,
        engine,
        id_prefix=settings.ADMIN_ID_PREFIX,
        password_min_length=settings.ADMIN_PASSWORD_MIN_LENGTH,
    )


def get_user_role_directory(
    db: Session = Depends(get_db),
    audit: AuditTrail = Depends(get_audit_trail),
) -> UserRoleDirectory:
    return UserRoleDirectory(db, audit)


# ---------------------------------------------------------------------------
# Principal
# ---------------------------------------------------------------------------

class AuthenticatedPrincipal(NamedTuple):
    """Resolved admin identity, populated by :func:`get_principal`."""
    account: AdminAccount     # freshly loaded for this request
    meta: RequestMeta         # caller IP / user agent for audit rows

    @property
    def admin_id(self) -> str:
        return self.account.admin_id

    @property
    def role(self) -> str:
        return self.account.role


def get_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
    guard: AuthenticationGuard = Depends(get_auth_guard),
    meta: RequestMeta = Depends(get_request_meta),
) -> AuthenticatedPrincipal:
    """Require an admin bearer token (any role, any permissions)."""
    if credentials is None:
        raise AuthenticationError(
            "Authentication required. Provide Authorization: Bearer <token>.",
            code=AUTH_REQUIRED,
        )
    account = guard.authenticate(credentials.credentials)
    return AuthenticatedPrincipal(account=account, meta=meta)


# ---------------------------------------------------------------------------
# require_permissions factory
# ---------------------------------------------------------------------------

def require_permissions(*permissions: Permission) -> Callable:
    """Return a FastAPI dependency that enforces any one of ``permissions``.

    Usage::

        @router.get("/activity")
        def endpoint(principal: AuthenticatedPrincipal = Depends(require_permissions(Permission.USER_MANAGEMENT))):
            ...
    """
    required = [p.value for p in permissions]

    def _permission_dep(
        principal: AuthenticatedPrincipal = Depends(get_principal),
        engine: PermissionEngine = Depends(get_permission_engine),
    ) -> AuthenticatedPrincipal:
        engine.require(principal.account, required)
        return principal

    # Give FastAPI a unique name so it doesn't collapse distinct dependencies
    _permission_dep.__name__ = f"require_{'_or_'.join(required) or 'authenticated'}"
    return _permission_dep
