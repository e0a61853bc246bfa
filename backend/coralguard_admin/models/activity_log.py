"""Activity log model: append-only record of privileged admin actions"""
import uuid

from sqlalchemy import Column, DateTime, Integer, JSON, String, Text

from coralguard_admin.database import Base
from coralguard_admin.models.immutable import make_append_only
from coralguard_admin.utils.clock import utcnow


def generate_uuid_string():
    """Generate UUID as string for SQLite compatibility"""
    return str(uuid.uuid4())


class ActivityLogRecord(Base):
    """ActivityLogRecord model - append-only log of admin actions"""

    __tablename__ = "activity_logs"

    id = Column(Integer, primary_key=True, index=True)
    log_id = Column(String(36), default=generate_uuid_string, unique=True, nullable=False, index=True)
    admin_id = Column(String(50), nullable=False, index=True)
    action = Column(String(50), nullable=False, index=True)       # login, logout, create_user, ...
    target_type = Column(String(20), nullable=True)               # User, Admin, Content, System, Security
    target_id = Column(String(50), nullable=True)
    description = Column(Text, nullable=False)
    severity = Column(String(20), nullable=False, default="low", index=True)  # low, medium, high, critical
    log_metadata = Column("metadata", JSON, nullable=True)  # Column name is 'metadata', attribute is 'log_metadata'
    timestamp = Column(DateTime, default=utcnow, nullable=False, index=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)
    previous_hash = Column(String(64), nullable=False)


make_append_only(ActivityLogRecord)
