"""Pure rules over an AdminAccount.

None of these touch the database; they take the account (or two accounts) and,
where time matters, an explicit ``now``.
"""
from datetime import datetime
from typing import Dict, Iterable, List, Tuple

from coralguard_admin.models.admin_account import AdminAccount
from coralguard_admin.services.permission_catalog import (
    ACCESS_LEVEL_DISPLAY,
    ADMIN_ROLE_DISPLAY,
    LOWEST_USER_ROLE,
    AccessLevel,
    AdminRole,
    Permission,
)
from coralguard_admin.services.role_transitions import RoleTransitionValidator

SUPER_ADMIN = AdminRole.SUPER_ADMIN.value
_transitions = RoleTransitionValidator()

# action -> any one of these is needed on top of the hierarchy check
_ADMIN_ACTION_PERMISSIONS: Dict[str, Tuple[str, ...]] = {
    "view": (Permission.USER_MANAGEMENT.value, Permission.ADMIN_MANAGEMENT.value),
    "edit": (Permission.ADMIN_MANAGEMENT.value, Permission.USER_MANAGEMENT.value),
    "status": (Permission.USER_MANAGEMENT.value, Permission.ADMIN_MANAGEMENT.value),
    "delete": (Permission.ADMIN_MANAGEMENT.value,),
    "promote": (Permission.ROLE_ASSIGNMENT.value, Permission.ADMIN_MANAGEMENT.value),
    "demote": (Permission.ROLE_ASSIGNMENT.value, Permission.ADMIN_MANAGEMENT.value),
}


def is_super_admin(account: AdminAccount) -> bool:
    return account.role == SUPER_ADMIN


def is_locked(account: AdminAccount, now: datetime) -> bool:
    return account.lock_until is not None and account.lock_until > now


def has_permission(account: AdminAccount, permission: str) -> bool:
    """Super admins hold every permission; others need the token."""
    if is_super_admin(account):
        return True
    return permission in (account.permissions or [])


def has_any_permission(account: AdminAccount, permissions: Iterable[str]) -> bool:
    if is_super_admin(account):
        return True
    held = set(account.permissions or [])
    return any(p in held for p in permissions)


def can_manage(actor: AdminAccount, target: AdminAccount) -> bool:
    """True when ``actor`` sits strictly above ``target`` in the hierarchy.

    super_admin manages everyone, including other super admins. No one else
    manages a super_admin or a peer at the same level.
    """
    if is_super_admin(actor):
        return True
    if is_super_admin(target):
        return False
    return (actor.admin_level or 0) > (target.admin_level or 0)


def can_perform_admin_action(actor: AdminAccount, target: AdminAccount, action: str) -> bool:
    """Hierarchy check plus the permission the action needs."""
    if is_super_admin(actor):
        return True
    if not can_manage(actor, target):
        return False
    return has_any_permission(actor, _ADMIN_ACTION_PERMISSIONS.get(action, ()))


def capabilities(account: AdminAccount) -> Dict[str, object]:
    """What the account may do, in the shape the admin console renders."""
    perms: List[str] = list(account.permissions or [])
    users = has_permission(account, Permission.USER_MANAGEMENT.value)
    return {
        "role": account.role,
        "role_display": ADMIN_ROLE_DISPLAY.get(account.role, account.role),
        "admin_level": account.admin_level,
        "access_level": account.access_level,
        "access_level_display": ACCESS_LEVEL_DISPLAY.get(account.access_level, account.access_level),
        "is_super_admin": is_super_admin(account),
        "permissions": perms,
        "can_view_users": users,
        "can_edit_users": users and (is_super_admin(account) or account.access_level != AccessLevel.READ.value),
        "can_delete_users": users and (is_super_admin(account) or account.access_level == AccessLevel.FULL_ACCESS.value),
        "can_change_user_roles": users and _transitions.can_change_role(account.role, LOWEST_USER_ROLE, LOWEST_USER_ROLE),
        "can_view_role_history": has_permission(account, Permission.SECURITY_MANAGEMENT.value),
        "can_view_analytics": has_permission(account, Permission.ANALYTICS_VIEW.value),
        "can_manage_content": has_permission(account, Permission.CONTENT_MODERATION.value),
        "can_manage_system": has_permission(account, Permission.SYSTEM_SETTINGS.value),
        "can_manage_admins": has_permission(account, Permission.ADMIN_MANAGEMENT.value),
        "can_assign_roles": has_permission(account, Permission.ROLE_ASSIGNMENT.value),
        "can_access_database": has_permission(account, Permission.DATABASE_ACCESS.value),
        "can_perform_backup": has_permission(account, Permission.BACKUP_RESTORE.value),
    }
