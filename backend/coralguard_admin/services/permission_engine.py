"""Per-request permission checks"""
from typing import Iterable

from coralguard_admin.errors import AuthorizationError
from coralguard_admin.middleware.monitoring import record_auth_failure
from coralguard_admin.models.admin_account import AdminAccount
from coralguard_admin.services.account_rules import has_any_permission, is_super_admin
from coralguard_admin.services.permission_catalog import ACCESS_LEVEL_RANK
from coralguard_admin.utils.logger import logger


class PermissionEngine:
    """Decides whether an authenticated admin may proceed.

    Stateless: every call evaluates the account it is given, which the HTTP
    layer re-loads from the store on each request. Nothing is cached.
    """

    def authorize(self, account: AdminAccount, required: Iterable[str]) -> bool:
        """Allow super admins, empty requirement sets, or any single overlap."""
        required = [getattr(p, "value", p) for p in required]
        if is_super_admin(account):
            return True
        if not required:
            return True
        return has_any_permission(account, required)

    def require(self, account: AdminAccount, required: Iterable[str]) -> None:
        required = [getattr(p, "value", p) for p in required]
        if self.authorize(account, required):
            return
        record_auth_failure("PERMISSION_DENIED")
        logger.warning(
            f"Permission denied for {account.admin_id}: needs one of {required}",
            extra={"admin_id": account.admin_id, "error_code": "PERMISSION_DENIED"},
        )
        raise AuthorizationError(
            "Insufficient permissions",
            details={"required_permissions": required},
        )

    def require_access_level(self, account: AdminAccount, minimum: str) -> None:
        """Access level order is read < write < full_access; super admins bypass."""
        if is_super_admin(account):
            return
        have = ACCESS_LEVEL_RANK.get(account.access_level, 0)
        need = ACCESS_LEVEL_RANK.get(getattr(minimum, "value", minimum), len(ACCESS_LEVEL_RANK) + 1)
        if have < need:
            raise AuthorizationError(
                f"Access level '{minimum}' required",
                details={"required_access_level": getattr(minimum, "value", minimum), "access_level": account.access_level},
            )
