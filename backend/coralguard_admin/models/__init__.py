"""Database models"""
from coralguard_admin.models.activity_log import ActivityLogRecord
from coralguard_admin.models.admin_account import AdminAccount
from coralguard_admin.models.role_history import RoleHistoryRecord
from coralguard_admin.models.user_account import UserAccount

__all__ = ["ActivityLogRecord", "AdminAccount", "RoleHistoryRecord", "UserAccount"]
