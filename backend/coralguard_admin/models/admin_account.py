"""AdminAccount model: administrative identities with role, level and permissions"""
from sqlalchemy import Boolean, Column, DateTime, Index, Integer, JSON, String

from coralguard_admin.database import Base
from coralguard_admin.utils.clock import utcnow


class AdminAccount(Base):
    """An administrative operator.

    ``permissions`` is seeded from the role defaults at creation and may later
    hold manual grants beyond them. ``created_by`` and ``managed_by`` are weak
    references to other admin_ids (no foreign key; the referenced account may
    have been deleted).
    """

    __tablename__ = "admin_accounts"

    id = Column(Integer, primary_key=True)
    admin_id = Column(String(50), unique=True, nullable=False, index=True)   # "adm_xxx"
    name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)     # stored lowercased
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default="moderator")           # super_admin|system_admin|admin|content_admin|moderator
    admin_level = Column(Integer, nullable=False, default=1)                 # 1..10
    access_level = Column(String(20), nullable=False, default="read")        # read|write|full_access
    permissions = Column(JSON, nullable=False, default=list)

    is_active = Column(Boolean, default=True, nullable=False)
    is_verified = Column(Boolean, default=True, nullable=False)

    department = Column(String(100), nullable=True)
    phone = Column(String(50), nullable=True)

    login_attempts = Column(Integer, default=0, nullable=False)
    lock_until = Column(DateTime, nullable=True)
    last_login = Column(DateTime, nullable=True)

    created_by = Column(String(50), nullable=True)
    managed_by = Column(String(50), nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_admin_accounts_role_active", "role", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<AdminAccount {self.admin_id} role={self.role}>"
