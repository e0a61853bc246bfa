"""UserAccount model: ordinary users whose tier role is managed by admins"""
from sqlalchemy import Boolean, Column, DateTime, Integer, JSON, String

from coralguard_admin.database import Base
from coralguard_admin.utils.clock import utcnow


class UserAccount(Base):
    """Ordinary user. Owned by the surrounding CRUD system; this service only
    reads it and mutates ``role``, ``permissions`` and ``subscription``."""

    __tablename__ = "user_accounts"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(50), unique=True, nullable=False, index=True)    # "usr_xxx"
    name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    role = Column(String(20), nullable=False, default="user", index=True)    # user|premium|researcher|moderator|scientist
    permissions = Column(JSON, nullable=False, default=list)
    subscription = Column(String(20), nullable=True, index=True)             # free|basic|premium|enterprise
    is_active = Column(Boolean, default=True, nullable=False)

    role_changed_by = Column(String(50), nullable=True)
    role_changed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
