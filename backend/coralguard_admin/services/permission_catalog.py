"""Permission catalog: the single source of permission tokens and role tables.

Two role namespaces live here: administrative roles (held by AdminAccount) and
user-tier roles (held by UserAccount). Both contain a role called "moderator";
they are distinct values of distinct enums and are never compared to each other.
"""
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Tuple

from coralguard_admin.errors import ValidationError


class Permission(str, Enum):
    # Base tokens, grantable to ordinary users
    IMAGE_UPLOAD = "image_upload"
    ADVANCED_ANALYSIS = "advanced_analysis"
    DATA_EXPORT = "data_export"
    BULK_UPLOAD = "bulk_upload"
    API_ACCESS = "api_access"
    PRIORITY_SUPPORT = "priority_support"

    # Administrative tokens
    USER_MANAGEMENT = "user_management"
    CONTENT_MODERATION = "content_moderation"
    SYSTEM_SETTINGS = "system_settings"
    ANALYTICS_VIEW = "analytics_view"
    BACKUP_RESTORE = "backup_restore"
    SECURITY_MANAGEMENT = "security_management"
    ADMIN_MANAGEMENT = "admin_management"
    ROLE_ASSIGNMENT = "role_assignment"
    SYSTEM_MONITORING = "system_monitoring"
    DATABASE_ACCESS = "database_access"


class AdminRole(str, Enum):
    SUPER_ADMIN = "super_admin"
    SYSTEM_ADMIN = "system_admin"
    ADMIN = "admin"
    CONTENT_ADMIN = "content_admin"
    MODERATOR = "moderator"


class UserRole(str, Enum):
    USER = "user"
    PREMIUM = "premium"
    RESEARCHER = "researcher"
    MODERATOR = "moderator"
    SCIENTIST = "scientist"


class AccessLevel(str, Enum):
    READ = "read"
    WRITE = "write"
    FULL_ACCESS = "full_access"


class SubscriptionPlan(str, Enum):
    FREE = "free"
    BASIC = "basic"
    PREMIUM = "premium"
    ENTERPRISE = "enterprise"


P = Permission

BASE_PERMISSIONS: FrozenSet[str] = frozenset(p.value for p in (
    P.IMAGE_UPLOAD, P.ADVANCED_ANALYSIS, P.DATA_EXPORT,
    P.BULK_UPLOAD, P.API_ACCESS, P.PRIORITY_SUPPORT,
))
ADMIN_PERMISSIONS: FrozenSet[str] = frozenset(p.value for p in Permission) - BASE_PERMISSIONS
ALL_PERMISSIONS: FrozenSet[str] = BASE_PERMISSIONS | ADMIN_PERMISSIONS

_CATALOG_ORDER: Dict[str, int] = {p.value: i for i, p in enumerate(Permission)}

ADMIN_ROLE_DEFAULTS: Dict[str, Tuple[str, ...]] = {
    AdminRole.SUPER_ADMIN.value: tuple(p.value for p in (
        P.USER_MANAGEMENT, P.CONTENT_MODERATION, P.SYSTEM_SETTINGS,
        P.ANALYTICS_VIEW, P.BACKUP_RESTORE, P.SECURITY_MANAGEMENT,
        P.ADMIN_MANAGEMENT, P.ROLE_ASSIGNMENT, P.SYSTEM_MONITORING,
        P.DATABASE_ACCESS, P.API_ACCESS, P.PRIORITY_SUPPORT,
    )),
    AdminRole.SYSTEM_ADMIN.value: tuple(p.value for p in (
        P.USER_MANAGEMENT, P.SYSTEM_SETTINGS, P.ANALYTICS_VIEW,
        P.BACKUP_RESTORE, P.SECURITY_MANAGEMENT, P.SYSTEM_MONITORING,
        P.API_ACCESS,
    )),
    AdminRole.ADMIN.value: tuple(p.value for p in (
        P.USER_MANAGEMENT, P.CONTENT_MODERATION, P.ANALYTICS_VIEW,
        P.ADVANCED_ANALYSIS, P.DATA_EXPORT,
    )),
    AdminRole.CONTENT_ADMIN.value: tuple(p.value for p in (
        P.CONTENT_MODERATION, P.USER_MANAGEMENT, P.ANALYTICS_VIEW,
        P.IMAGE_UPLOAD, P.BULK_UPLOAD,
    )),
    AdminRole.MODERATOR.value: tuple(p.value for p in (
        P.CONTENT_MODERATION, P.IMAGE_UPLOAD, P.ADVANCED_ANALYSIS,
    )),
}
_ADMIN_FALLBACK: Tuple[str, ...] = (P.CONTENT_MODERATION.value,)

USER_ROLE_DEFAULTS: Dict[str, Tuple[str, ...]] = {
    UserRole.USER.value: (P.IMAGE_UPLOAD.value,),
    UserRole.PREMIUM.value: tuple(p.value for p in (
        P.IMAGE_UPLOAD, P.ADVANCED_ANALYSIS, P.PRIORITY_SUPPORT,
    )),
    UserRole.RESEARCHER.value: tuple(p.value for p in (
        P.IMAGE_UPLOAD, P.ADVANCED_ANALYSIS, P.DATA_EXPORT, P.API_ACCESS,
    )),
    UserRole.MODERATOR.value: tuple(p.value for p in (
        P.IMAGE_UPLOAD, P.ADVANCED_ANALYSIS, P.DATA_EXPORT,
    )),
    UserRole.SCIENTIST.value: tuple(p.value for p in (
        P.IMAGE_UPLOAD, P.ADVANCED_ANALYSIS, P.DATA_EXPORT,
        P.BULK_UPLOAD, P.API_ACCESS, P.PRIORITY_SUPPORT,
    )),
}
_USER_FALLBACK: Tuple[str, ...] = (P.IMAGE_UPLOAD.value,)

ADMIN_ROLE_LEVELS: Dict[str, int] = {
    AdminRole.SUPER_ADMIN.value: 10,
    AdminRole.SYSTEM_ADMIN.value: 8,
    AdminRole.ADMIN.value: 5,
    AdminRole.CONTENT_ADMIN.value: 3,
    AdminRole.MODERATOR.value: 1,
}
MIN_ADMIN_LEVEL = 1
MAX_ADMIN_LEVEL = 10

# Total order of user-tier roles, low to high
USER_ROLE_RANK: Dict[str, int] = {
    UserRole.USER.value: 1,
    UserRole.PREMIUM.value: 2,
    UserRole.RESEARCHER.value: 3,
    UserRole.MODERATOR.value: 4,
    UserRole.SCIENTIST.value: 5,
}
LOWEST_USER_ROLE = UserRole.USER.value
TOP_USER_ROLE = UserRole.SCIENTIST.value

ACCESS_LEVEL_RANK: Dict[str, int] = {
    AccessLevel.READ.value: 1,
    AccessLevel.WRITE.value: 2,
    AccessLevel.FULL_ACCESS.value: 3,
}

ADMIN_ROLE_DISPLAY: Dict[str, str] = {
    AdminRole.SUPER_ADMIN.value: "Super Administrator",
    AdminRole.ADMIN.value: "Administrator",
    AdminRole.MODERATOR.value: "Content Moderator",
    AdminRole.SYSTEM_ADMIN.value: "System Administrator",
    AdminRole.CONTENT_ADMIN.value: "Content Administrator",
}

ACCESS_LEVEL_DISPLAY: Dict[str, str] = {
    AccessLevel.READ.value: "Read Only",
    AccessLevel.WRITE.value: "Read & Write",
    AccessLevel.FULL_ACCESS.value: "Full Access",
}

ROLE_TEMPLATES: List[Dict[str, object]] = [
    {
        "role": UserRole.USER.value,
        "display_name": "Regular User",
        "description": "Basic coral image analysis access",
        "features": ["Basic image upload", "Simple coral analysis", "View results"],
        "limitations": ["Limited uploads per month", "Basic support"],
        "subscription_required": False,
    },
    {
        "role": UserRole.PREMIUM.value,
        "display_name": "Premium User",
        "description": "Enhanced features with priority support",
        "features": ["Unlimited uploads", "Advanced analysis", "Priority support", "Historical data"],
        "limitations": ["Limited API access"],
        "subscription_required": True,
    },
    {
        "role": UserRole.RESEARCHER.value,
        "display_name": "Researcher",
        "description": "Academic research access with data export",
        "features": ["Data export", "API access", "Research tools", "Collaboration features"],
        "limitations": ["No bulk upload"],
        "subscription_required": False,
    },
    {
        "role": UserRole.MODERATOR.value,
        "display_name": "Content Moderator",
        "description": "Content moderation and quality control",
        "features": ["Content moderation", "Quality control", "User management"],
        "limitations": ["No bulk operations"],
        "subscription_required": False,
    },
    {
        "role": UserRole.SCIENTIST.value,
        "display_name": "Marine Scientist",
        "description": "Full access for marine scientists",
        "features": ["Full API access", "Bulk upload", "Advanced analytics", "Custom models"],
        "limitations": [],
        "subscription_required": False,
    },
]


def is_admin_role(role: str) -> bool:
    return role in ADMIN_ROLE_DEFAULTS


def is_user_role(role: str) -> bool:
    return role in USER_ROLE_DEFAULTS


def default_admin_permissions(role: str) -> FrozenSet[str]:
    """Default permission set for an admin role; unknown roles get the narrowest set."""
    return frozenset(ADMIN_ROLE_DEFAULTS.get(role, _ADMIN_FALLBACK))


def default_user_permissions(role: str) -> FrozenSet[str]:
    """Default permission set for a user-tier role; unknown roles get the narrowest set."""
    return frozenset(USER_ROLE_DEFAULTS.get(role, _USER_FALLBACK))


def admin_level_for(role: str) -> int:
    return ADMIN_ROLE_LEVELS.get(role, MIN_ADMIN_LEVEL)


def user_role_rank(role: str) -> int:
    """Rank in the user-tier order; 0 for unknown roles."""
    return USER_ROLE_RANK.get(role, 0)


def ordered(permissions: Iterable[str]) -> List[str]:
    """Catalog order, duplicates removed."""
    return sorted(set(permissions), key=lambda p: _CATALOG_ORDER.get(p, len(_CATALOG_ORDER)))


def normalize_permissions(permissions: Iterable[str], allowed: FrozenSet[str] = ALL_PERMISSIONS) -> List[str]:
    """Validate tokens against ``allowed`` and return them in catalog order.

    Raises:
        ValidationError: if any token is outside ``allowed``.
    """
    tokens = [str(getattr(p, "value", p)) for p in permissions]
    unknown = sorted(set(tokens) - allowed)
    if unknown:
        raise ValidationError(
            f"Unknown or ungrantable permissions: {', '.join(unknown)}",
            details={"permissions": unknown},
        )
    return ordered(tokens)


def role_templates() -> List[Dict[str, object]]:
    """User role templates with their default permissions."""
    return [
        {**template, "default_permissions": list(USER_ROLE_DEFAULTS[str(template["role"])])}
        for template in ROLE_TEMPLATES
    ]
