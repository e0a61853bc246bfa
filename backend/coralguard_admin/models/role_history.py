"""Role history model: append-only ledger of user role transitions"""
import uuid

from sqlalchemy import Boolean, Column, DateTime, Integer, JSON, String, Text

from coralguard_admin.database import Base
from coralguard_admin.models.immutable import make_append_only
from coralguard_admin.utils.clock import utcnow


def generate_uuid_string():
    """Generate UUID as string for SQLite compatibility"""
    return str(uuid.uuid4())


class RoleHistoryRecord(Base):
    """One user role transition. Rows are never updated or deleted."""

    __tablename__ = "role_history"

    id = Column(Integer, primary_key=True, index=True)
    history_id = Column(String(36), default=generate_uuid_string, unique=True, nullable=False, index=True)
    user_id = Column(String(50), nullable=False, index=True)
    previous_role = Column(String(20), nullable=False)
    new_role = Column(String(20), nullable=False, index=True)
    previous_permissions = Column(JSON, nullable=False, default=list)
    new_permissions = Column(JSON, nullable=False, default=list)
    reason = Column(Text, nullable=False)
    changed_by = Column(String(50), nullable=False, index=True)              # admin_id
    changed_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)
    log_metadata = Column("metadata", JSON, nullable=True)  # Column name is 'metadata', attribute is 'log_metadata'
    notification_sent = Column(Boolean, default=False, nullable=False)
    previous_hash = Column(String(64), nullable=False)


make_append_only(RoleHistoryRecord)
