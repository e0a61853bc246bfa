"""User role changes, one at a time or in bulk.

The user mutation is the only write whose failure is reported to the caller.
Role history, activity logging and the user notification all happen after it
is committed and are best-effort (see ``AuditTrail`` and ``DiagnosticsSink``).
"""
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from coralguard_admin.errors import (
    AppError,
    AuthorizationError,
    DependencyError,
    NotFoundError,
    ValidationError,
)
from coralguard_admin.middleware.monitoring import record_role_change
from coralguard_admin.models.admin_account import AdminAccount
from coralguard_admin.models.user_account import UserAccount
from coralguard_admin.services.audit_trail import (
    NO_META,
    ActivityAction,
    AuditTrail,
    RequestMeta,
    Severity,
    TargetType,
)
from coralguard_admin.services.permission_catalog import (
    BASE_PERMISSIONS,
    LOWEST_USER_ROLE,
    USER_ROLE_RANK,
    default_user_permissions,
    is_user_role,
    normalize_permissions,
    ordered,
)
from coralguard_admin.services.role_transitions import RoleTransitionValidator
from coralguard_admin.utils.clock import Clock, utcnow
from coralguard_admin.utils.diagnostics import DiagnosticsSink
from coralguard_admin.utils.logger import logger
from coralguard_admin.utils.webhook import ROLE_CHANGED

NOTIFICATION_SOURCE = "notification"


@dataclass
class RoleChangeOutcome:
    user: UserAccount
    previous_role: str
    new_role: str
    previous_permissions: List[str]
    new_permissions: List[str]
    history_id: Optional[str] = None
    notification_sent: bool = False


@dataclass(frozen=True)
class BulkItemFailure:
    user_id: str
    code: str
    message: str


@dataclass
class BulkRoleChangeResult:
    successful: List[RoleChangeOutcome] = field(default_factory=list)
    failed: List[BulkItemFailure] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.successful) + len(self.failed)


class RoleChangeCoordinator:
    def __init__(
        self,
        db: Session,
        audit: AuditTrail,
        validator: RoleTransitionValidator,
        notifier: Any,
        diagnostics: DiagnosticsSink,
        clock: Clock = utcnow,
        reason_min_length: int = 10,
    ):
        self.db = db
        self.audit = audit
        self.validator = validator
        self.notifier = notifier
        self.diagnostics = diagnostics
        self.clock = clock
        self.reason_min_length = reason_min_length

    # ------------------------------------------------------------------
    # Input checks
    # ------------------------------------------------------------------

    def _check_role(self, new_role: str) -> str:
        new_role = getattr(new_role, "value", new_role)
        if not is_user_role(new_role):
            raise ValidationError(
                f"Invalid role '{new_role}'",
                details={"valid_roles": list(USER_ROLE_RANK)},
            )
        return new_role

    def _check_reason(self, reason: Optional[str]) -> str:
        reason = (reason or "").strip()
        if len(reason) < self.reason_min_length:
            raise ValidationError(
                f"Reason must be at least {self.reason_min_length} characters long",
                details={"field": "reason", "min_length": self.reason_min_length},
            )
        return reason

    def _resolve_permissions(self, new_role: str, permissions: Optional[Iterable[str]]) -> List[str]:
        if permissions:
            return normalize_permissions(permissions, BASE_PERMISSIONS)
        return ordered(default_user_permissions(new_role))

    # ------------------------------------------------------------------
    # Single change
    # ------------------------------------------------------------------

    def change_role(
        self,
        user_id: str,
        new_role: str,
        reason: str,
        actor: AdminAccount,
        permissions: Optional[Iterable[str]] = None,
        notify: bool = True,
        meta: RequestMeta = NO_META,
    ) -> RoleChangeOutcome:
        new_role = self._check_role(new_role)
        outcome = self._change(user_id, new_role, reason, actor, permissions, notify, meta)

        self.audit.record_activity(
            actor.admin_id,
            ActivityAction.PERMISSION_CHANGE,
            f"Changed role of user {outcome.user.email} from {outcome.previous_role} to {outcome.new_role}",
            target_type=TargetType.USER,
            target_id=user_id,
            severity=Severity.MEDIUM,
            metadata={
                "previous_role": outcome.previous_role,
                "new_role": outcome.new_role,
                "reason": reason.strip(),
                "history_id": outcome.history_id,
            },
            meta=meta,
        )
        return outcome

    def _change(
        self,
        user_id: str,
        new_role: str,
        reason: str,
        actor: AdminAccount,
        permissions: Optional[Iterable[str]],
        notify: bool,
        meta: RequestMeta,
        metadata: Optional[dict] = None,
    ) -> RoleChangeOutcome:
        user = self.db.query(UserAccount).filter(UserAccount.user_id == user_id).first()
        if user is None:
            record_role_change("rejected")
            raise NotFoundError(f"User {user_id} not found")

        decision = self.validator.evaluate(actor.role, user.role, new_role)
        if not decision.allowed:
            record_role_change("rejected")
            raise AuthorizationError(decision.reason, details={"current_role": user.role, "new_role": new_role})

        try:
            reason = self._check_reason(reason)
            new_permissions = self._resolve_permissions(new_role, permissions)
        except ValidationError:
            record_role_change("rejected")
            raise

        previous_role = user.role
        previous_permissions = list(user.permissions or [])

        user.role = new_role
        user.permissions = new_permissions
        user.role_changed_by = actor.admin_id
        user.role_changed_at = self.clock()
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            record_role_change("failed")
            logger.error(
                f"Role change for {user_id} not committed: {exc}",
                extra={"admin_id": actor.admin_id, "user_id": user_id, "error_code": DependencyError.code},
            )
            raise DependencyError("Could not save the role change") from exc
        self.db.refresh(user)

        history = self.audit.record_role_change(
            user_id=user.user_id,
            previous_role=previous_role,
            new_role=new_role,
            previous_permissions=previous_permissions,
            new_permissions=new_permissions,
            reason=reason,
            changed_by=actor.admin_id,
            notification_sent=notify,
            metadata=metadata,
            meta=meta,
        )

        notified = False
        if notify:
            notified = self._notify(user, previous_role, new_role, reason)

        record_role_change("success")
        logger.info(
            f"User role changed: {user_id} {previous_role} -> {new_role}",
            extra={"admin_id": actor.admin_id, "user_id": user_id, "action": "permission_change"},
        )
        return RoleChangeOutcome(
            user=user,
            previous_role=previous_role,
            new_role=new_role,
            previous_permissions=previous_permissions,
            new_permissions=new_permissions,
            history_id=history.record_id,
            notification_sent=notified,
        )

    def _notify(self, user: UserAccount, previous_role: str, new_role: str, reason: str) -> bool:
        try:
            return bool(self.notifier.notify(
                user,
                ROLE_CHANGED,
                {"previous_role": previous_role, "new_role": new_role, "reason": reason},
            ))
        except Exception as exc:
            self.diagnostics.record(NOTIFICATION_SOURCE, exc, {"user_id": user.user_id, "event": ROLE_CHANGED})
            return False

    # ------------------------------------------------------------------
    # Bulk change
    # ------------------------------------------------------------------

    def bulk_change_role(
        self,
        user_ids: Iterable[str],
        new_role: str,
        reason: str,
        actor: AdminAccount,
        permissions: Optional[Iterable[str]] = None,
        notify: bool = True,
        meta: RequestMeta = NO_META,
    ) -> BulkRoleChangeResult:
        """Apply one role to many users.

        The whole batch is rejected up front when the ids are missing, the
        role or reason is invalid, or the actor could not make this change even
        for a user on the lowest tier. After that each user is handled on its
        own; a failure is recorded against that id and the loop carries on.
        """
        ids = list(dict.fromkeys(uid for uid in (user_ids or []) if uid))
        if not ids:
            raise ValidationError("At least one user id is required", details={"field": "userIds"})
        new_role = self._check_role(new_role)
        reason = self._check_reason(reason)
        if permissions:
            permissions = normalize_permissions(permissions, BASE_PERMISSIONS)

        decision = self.validator.evaluate(actor.role, LOWEST_USER_ROLE, new_role)
        if not decision.allowed:
            record_role_change("rejected")
            raise AuthorizationError(decision.reason, details={"new_role": new_role})

        result = BulkRoleChangeResult()
        for user_id in ids:
            try:
                outcome = self._change(
                    user_id, new_role, reason, actor, permissions, notify, meta,
                    metadata={"bulk": True},
                )
            except AppError as exc:
                result.failed.append(BulkItemFailure(user_id=user_id, code=exc.code, message=exc.message))
                continue
            result.successful.append(outcome)

        self.audit.record_activity(
            actor.admin_id,
            ActivityAction.PERMISSION_CHANGE,
            f"Bulk role change to {new_role}: {len(result.successful)} succeeded, {len(result.failed)} failed",
            target_type=TargetType.USER,
            severity=Severity.HIGH,
            metadata={
                "new_role": new_role,
                "reason": reason,
                "user_ids": ids,
                "successful": [o.user.user_id for o in result.successful],
                "failed": [f.user_id for f in result.failed],
            },
            meta=meta,
        )
        logger.info(
            f"Bulk role change to {new_role}: {len(result.successful)}/{result.total} succeeded",
            extra={"admin_id": actor.admin_id, "action": "permission_change"},
        )
        return result
