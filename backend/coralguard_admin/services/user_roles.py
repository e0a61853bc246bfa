"""Read side of user roles, plus subscription plan changes"""
from typing import Any, Dict, List

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from coralguard_admin.errors import DependencyError, NotFoundError, ValidationError
from coralguard_admin.models.admin_account import AdminAccount
from coralguard_admin.models.role_history import RoleHistoryRecord
from coralguard_admin.models.user_account import UserAccount
from coralguard_admin.services.audit_trail import (
    NO_META,
    ActivityAction,
    AuditTrail,
    Page,
    RequestMeta,
    Severity,
    TargetType,
    paginate,
)
from coralguard_admin.services.permission_catalog import (
    USER_ROLE_RANK,
    SubscriptionPlan,
    is_user_role,
    role_templates,
)
from coralguard_admin.utils.logger import logger

RECENT_ROLE_CHANGES = 10
_PLANS = [p.value for p in SubscriptionPlan]


class UserRoleDirectory:
    def __init__(self, db: Session, audit: AuditTrail):
        self.db = db
        self.audit = audit

    def users_by_role(self, role: str, page: int = 1, limit: int = 20) -> Page:
        if not is_user_role(role):
            raise ValidationError(f"Invalid role '{role}'", details={"valid_roles": list(USER_ROLE_RANK)})
        query = (
            self.db.query(UserAccount)
            .filter(UserAccount.role == role)
            .order_by(UserAccount.created_at.desc(), UserAccount.id.desc())
        )
        return paginate(query, page, limit)

    def role_stats(self, include_recent: bool = True) -> Dict[str, Any]:
        """Counts by role and plan; recent role changes only when ``include_recent``."""
        total = self.db.query(func.count(UserAccount.id)).scalar() or 0
        active = (
            self.db.query(func.count(UserAccount.id))
            .filter(UserAccount.is_active == True)  # noqa: E712
            .scalar()
            or 0
        )

        by_role = {role: 0 for role in USER_ROLE_RANK}
        for role, count in self.db.query(UserAccount.role, func.count(UserAccount.id)).group_by(UserAccount.role):
            by_role[role] = count

        by_subscription: Dict[str, int] = {}
        rows = self.db.query(UserAccount.subscription, func.count(UserAccount.id)).group_by(UserAccount.subscription)
        for plan, count in rows:
            by_subscription[plan or "none"] = count

        recent: List[RoleHistoryRecord] = []
        if include_recent:
            recent = (
                self.db.query(RoleHistoryRecord)
                .order_by(RoleHistoryRecord.changed_at.desc(), RoleHistoryRecord.id.desc())
                .limit(RECENT_ROLE_CHANGES)
                .all()
            )

        return {
            "total_users": total,
            "active_users": active,
            "users_by_role": by_role,
            "users_by_subscription": by_subscription,
            "recent_role_changes": recent,
        }

    def role_templates(self) -> List[Dict[str, object]]:
        return role_templates()

    def update_subscription(
        self,
        user_id: str,
        plan: str,
        actor: AdminAccount,
        meta: RequestMeta = NO_META,
    ) -> UserAccount:
        if plan not in _PLANS:
            raise ValidationError(f"Invalid subscription plan '{plan}'", details={"valid_plans": _PLANS})

        user = self.db.query(UserAccount).filter(UserAccount.user_id == user_id).first()
        if user is None:
            raise NotFoundError(f"User {user_id} not found")

        previous = user.subscription
        user.subscription = plan
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise DependencyError("Could not save the subscription change") from exc
        self.db.refresh(user)

        self.audit.record_activity(
            actor.admin_id,
            ActivityAction.UPDATE_USER,
            f"Subscription of {user.email} changed from {previous or 'none'} to {plan}",
            target_type=TargetType.USER,
            target_id=user.user_id,
            severity=Severity.MEDIUM,
            metadata={"previous_subscription": previous, "subscription": plan},
            meta=meta,
        )
        logger.info(
            f"Subscription changed for {user_id}: {previous} -> {plan}",
            extra={"admin_id": actor.admin_id, "user_id": user_id, "action": "update_user"},
        )
        return user
