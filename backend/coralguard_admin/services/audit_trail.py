"""Append-only audit ledgers: admin activity and user role history.

Writes are best-effort. A failed write is rolled back, handed to the
DiagnosticsSink and reported through :class:`AuditWriteResult`; it never raises
into the operation being audited.

Both ledgers are hash-chained (see ``utils/chain.py``). Before inserting, the
latest row is locked (``SELECT ... FOR UPDATE`` on PostgreSQL; SQLite
serialises writers on its own) so two concurrent writers cannot link to the
same predecessor.
"""
import math
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Generic, Iterable, List, NamedTuple, Optional, Type, TypeVar

from sqlalchemy.orm import Session

from coralguard_admin.models.activity_log import ActivityLogRecord
from coralguard_admin.models.role_history import RoleHistoryRecord
from coralguard_admin.utils import chain as chain_utils
from coralguard_admin.utils.clock import Clock, utcnow
from coralguard_admin.utils.diagnostics import DiagnosticsSink
from coralguard_admin.utils.logger import logger

T = TypeVar("T")

ACTIVITY_SOURCE = "audit.activity"
ROLE_HISTORY_SOURCE = "audit.role_history"


class ActivityAction(str, Enum):
    LOGIN = "login"
    LOGOUT = "logout"
    CREATE_USER = "create_user"
    UPDATE_USER = "update_user"
    DELETE_USER = "delete_user"
    MODERATE_CONTENT = "moderate_content"
    SYSTEM_UPDATE = "system_update"
    BACKUP_CREATED = "backup_created"
    SECURITY_UPDATE = "security_update"
    PERMISSION_CHANGE = "permission_change"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class TargetType(str, Enum):
    USER = "User"
    ADMIN = "Admin"
    CONTENT = "Content"
    SYSTEM = "System"
    SECURITY = "Security"


class RequestMeta(NamedTuple):
    """Caller details copied onto audit rows."""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


NO_META = RequestMeta()


@dataclass(frozen=True)
class AuditWriteResult:
    ok: bool
    record_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class Page(Generic[T]):
    items: List[T]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def pagination(self) -> Dict[str, Any]:
        return {
            "page": self.page,
            "limit": self.limit,
            "total": self.total,
            "pages": self.pages,
            "has_next": self.page < self.pages,
            "has_prev": self.page > 1,
        }


@dataclass(frozen=True)
class ChainVerification:
    valid: bool
    total_entries: int
    broken_at: Optional[str] = None


def _value(v):
    return getattr(v, "value", v)


def activity_link(e: ActivityLogRecord) -> chain_utils.Link:
    content = chain_utils.canonical_content({
        "admin_id": e.admin_id,
        "target_type": e.target_type,
        "target_id": e.target_id,
        "description": e.description,
        "severity": e.severity,
        "metadata": e.log_metadata,
        "timestamp": e.timestamp,
        "ip_address": e.ip_address,
        "user_agent": e.user_agent,
    })
    return (e.log_id, e.timestamp, e.action, e.previous_hash, content)


def role_history_link(e: RoleHistoryRecord) -> chain_utils.Link:
    content = chain_utils.canonical_content({
        "user_id": e.user_id,
        "previous_role": e.previous_role,
        "previous_permissions": e.previous_permissions,
        "new_permissions": e.new_permissions,
        "reason": e.reason,
        "changed_by": e.changed_by,
        "changed_at": e.changed_at,
        "ip_address": e.ip_address,
        "user_agent": e.user_agent,
        "metadata": e.log_metadata,
        "notification_sent": e.notification_sent,
    })
    return (e.history_id, e.changed_at, e.new_role, e.previous_hash, content)


def paginate(query, page: int, limit: int) -> Page:
    page = max(page, 1)
    limit = max(limit, 1)
    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    return Page(items=items, total=total, page=page, limit=limit)


class AuditTrail:
    def __init__(self, db: Session, diagnostics: DiagnosticsSink, clock: Clock = utcnow):
        self.db = db
        self.diagnostics = diagnostics
        self.clock = clock

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def record_activity(
        self,
        admin_id: str,
        action: str,
        description: str,
        *,
        target_type: Optional[str] = None,
        target_id: Optional[str] = None,
        severity: str = Severity.LOW,
        metadata: Optional[Dict[str, Any]] = None,
        meta: RequestMeta = NO_META,
    ) -> AuditWriteResult:
        log_id = str(uuid.uuid4())
        action = _value(action)
        try:
            record = ActivityLogRecord(
                log_id=log_id,
                admin_id=admin_id,
                action=action,
                target_type=_value(target_type),
                target_id=target_id,
                description=description,
                severity=_value(severity),
                log_metadata=metadata,
                timestamp=self.clock(),
                ip_address=meta.ip_address,
                user_agent=meta.user_agent,
            )
            record.previous_hash = self._next_hash(ActivityLogRecord, record, activity_link)
            self._persist(record)
        except Exception as exc:
            return self._failed(ACTIVITY_SOURCE, exc, {"admin_id": admin_id, "action": action, "target_id": target_id})

        logger.debug(
            f"Activity recorded: {action}",
            extra={"admin_id": admin_id, "action": action, "target_id": target_id},
        )
        return AuditWriteResult(ok=True, record_id=log_id)

    def record_role_change(
        self,
        user_id: str,
        previous_role: str,
        new_role: str,
        previous_permissions: Iterable[str],
        new_permissions: Iterable[str],
        reason: str,
        changed_by: str,
        *,
        notification_sent: bool = False,
        metadata: Optional[Dict[str, Any]] = None,
        meta: RequestMeta = NO_META,
    ) -> AuditWriteResult:
        history_id = str(uuid.uuid4())
        try:
            record = RoleHistoryRecord(
                history_id=history_id,
                user_id=user_id,
                previous_role=previous_role,
                new_role=new_role,
                previous_permissions=list(previous_permissions),
                new_permissions=list(new_permissions),
                reason=reason,
                changed_by=changed_by,
                changed_at=self.clock(),
                ip_address=meta.ip_address,
                user_agent=meta.user_agent,
                log_metadata=metadata,
                notification_sent=notification_sent,
            )
            record.previous_hash = self._next_hash(RoleHistoryRecord, record, role_history_link)
            self._persist(record)
        except Exception as exc:
            return self._failed(ROLE_HISTORY_SOURCE, exc, {"user_id": user_id, "changed_by": changed_by})

        logger.debug(
            f"Role history recorded for {user_id}: {previous_role} -> {new_role}",
            extra={"user_id": user_id, "admin_id": changed_by},
        )
        return AuditWriteResult(ok=True, record_id=history_id)

    def _next_hash(self, model: Type, record, link: Callable[[Any], chain_utils.Link]) -> str:
        entry_id, _, action, _, content = link(record)
        prev = (
            self.db.query(model)
            .order_by(model.id.desc())
            .with_for_update()
            .first()
        )
        if prev is None:
            return chain_utils.first_hash(entry_id, action, content)
        prev_id, prev_ts, _, _, _ = link(prev)
        return chain_utils.compute_hash(prev_id, prev_ts, entry_id, action, content)

    def _persist(self, record) -> None:
        self.db.add(record)
        self.db.commit()

    def _failed(self, source: str, exc: Exception, context: Dict[str, Any]) -> AuditWriteResult:
        try:
            self.db.rollback()
        except Exception as rollback_exc:
            logger.warning(f"Rollback after audit failure also failed: {rollback_exc}", extra={"source": source})
        self.diagnostics.record(source, exc, context)
        return AuditWriteResult(ok=False, error=str(exc))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def query_activity(
        self,
        *,
        admin_id: Optional[str] = None,
        action: Optional[str] = None,
        severity: Optional[str] = None,
        target_type: Optional[str] = None,
        target_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Page:
        query = self.db.query(ActivityLogRecord)

        if admin_id:
            query = query.filter(ActivityLogRecord.admin_id == admin_id)
        if action:
            query = query.filter(ActivityLogRecord.action == _value(action))
        if severity:
            query = query.filter(ActivityLogRecord.severity == _value(severity))
        if target_type:
            query = query.filter(ActivityLogRecord.target_type == _value(target_type))
        if target_id:
            query = query.filter(ActivityLogRecord.target_id == target_id)
        if start:
            query = query.filter(ActivityLogRecord.timestamp >= start)
        if end:
            query = query.filter(ActivityLogRecord.timestamp <= end)

        query = query.order_by(ActivityLogRecord.timestamp.desc(), ActivityLogRecord.id.desc())
        return paginate(query, page, limit)

    def query_role_history(
        self,
        *,
        user_id: Optional[str] = None,
        changed_by: Optional[str] = None,
        new_role: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Page:
        query = self.db.query(RoleHistoryRecord)

        if user_id:
            query = query.filter(RoleHistoryRecord.user_id == user_id)
        if changed_by:
            query = query.filter(RoleHistoryRecord.changed_by == changed_by)
        if new_role:
            query = query.filter(RoleHistoryRecord.new_role == _value(new_role))
        if start:
            query = query.filter(RoleHistoryRecord.changed_at >= start)
        if end:
            query = query.filter(RoleHistoryRecord.changed_at <= end)

        query = query.order_by(RoleHistoryRecord.changed_at.desc(), RoleHistoryRecord.id.desc())
        return paginate(query, page, limit)

    # ------------------------------------------------------------------
    # Integrity
    # ------------------------------------------------------------------

    def verify_activity_chain(self) -> ChainVerification:
        entries = self.db.query(ActivityLogRecord).order_by(ActivityLogRecord.id.asc()).all()
        broken = chain_utils.find_break(entries, activity_link)
        return ChainVerification(
            valid=broken is None,
            total_entries=len(entries),
            broken_at=broken.log_id if broken is not None else None,
        )

    def verify_role_history_chain(self) -> ChainVerification:
        entries = self.db.query(RoleHistoryRecord).order_by(RoleHistoryRecord.id.asc()).all()
        broken = chain_utils.find_break(entries, role_history_link)
        return ChainVerification(
            valid=broken is None,
            total_entries=len(entries),
            broken_at=broken.history_id if broken is not None else None,
        )
