"""Administrative account management: registration, lookup, edits, status,
deletion, self-service profile and password, and bootstrap seeding."""
import secrets
from typing import Any, Dict, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from coralguard_admin.errors import (
    AuthorizationError,
    ConflictError,
    DependencyError,
    NotFoundError,
    ValidationError,
)
from coralguard_admin.models.admin_account import AdminAccount
from coralguard_admin.schemas.admin_account import (
    AdminRegisterRequest,
    AdminUpdateRequest,
    ProfileUpdateRequest,
)
from coralguard_admin.services.account_rules import can_perform_admin_action, is_super_admin
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
    AccessLevel,
    AdminRole,
    admin_level_for,
    default_admin_permissions,
    normalize_permissions,
    ordered,
)
from coralguard_admin.services.permission_engine import PermissionEngine
from coralguard_admin.utils.logger import logger
from coralguard_admin.utils.passwords import PasswordHasher


# fields an update may clear
_NULLABLE_FIELDS = frozenset({"department", "phone", "managed_by"})


def generate_admin_id(prefix: str = "adm_") -> str:
    return f"{prefix}{secrets.token_urlsafe(10)}"


def _value(v):
    return getattr(v, "value", v)


class AdminAccountService:
    def __init__(
        self,
        db: Session,
        hasher: PasswordHasher,
        audit: AuditTrail,
        engine: PermissionEngine,
        id_prefix: str = "adm_",
        password_min_length: int = 8,
    ):
        self.db = db
        self.hasher = hasher
        self.audit = audit
        self.engine = engine
        self.id_prefix = id_prefix
        self.password_min_length = password_min_length

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _find_by_email(self, email: str) -> Optional[AdminAccount]:
        return self.db.query(AdminAccount).filter(AdminAccount.email == email.strip().lower()).first()

    def get_admin(self, admin_id: str) -> AdminAccount:
        account = self.db.query(AdminAccount).filter(AdminAccount.admin_id == admin_id).first()
        if account is None:
            raise NotFoundError(f"Admin {admin_id} not found")
        return account

    def _commit(self, what: str) -> None:
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise ConflictError("Admin with this email already exists") from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise DependencyError(f"Could not {what}") from exc

    def _check_password(self, password: str) -> None:
        if len(password or "") < self.password_min_length:
            raise ValidationError(
                f"Password must be at least {self.password_min_length} characters long",
                details={"field": "password", "min_length": self.password_min_length},
            )

    def _check_grantable_level(self, actor: AdminAccount, role: str, level: int) -> None:
        """Non super admins may only create or promote accounts below themselves."""
        if is_super_admin(actor):
            return
        if role == AdminRole.SUPER_ADMIN.value:
            raise AuthorizationError("Only a super_admin can grant the super_admin role")
        if level >= (actor.admin_level or 0):
            raise AuthorizationError(
                "Cannot grant an admin level at or above your own",
                details={"admin_level": level, "your_level": actor.admin_level},
            )

    def _require_action(self, actor: AdminAccount, target: AdminAccount, action: str) -> None:
        if not can_perform_admin_action(actor, target, action):
            raise AuthorizationError(
                f"Not allowed to {action} this admin",
                details={"target_admin_id": target.admin_id, "action": action},
            )

    # ------------------------------------------------------------------
    # Registration and listing
    # ------------------------------------------------------------------

    def register(self, data: AdminRegisterRequest, actor: AdminAccount, meta: RequestMeta = NO_META) -> AdminAccount:
        email = str(data.email).strip().lower()
        if self._find_by_email(email) is not None:
            raise ConflictError("Admin with this email already exists", details={"email": email})
        self._check_password(data.password)

        role = _value(data.role)
        level = data.admin_level if data.admin_level is not None else admin_level_for(role)
        self._check_grantable_level(actor, role, level)

        if data.permissions is not None:
            permissions = normalize_permissions(data.permissions)
        else:
            permissions = ordered(default_admin_permissions(role))

        account = AdminAccount(
            admin_id=generate_admin_id(self.id_prefix),
            name=data.name.strip(),
            email=email,
            password_hash=self.hasher.hash(data.password),
            role=role,
            admin_level=level,
            access_level=_value(data.access_level),
            permissions=permissions,
            is_active=True,
            is_verified=True,
            department=data.department,
            phone=data.phone,
            login_attempts=0,
            created_by=actor.admin_id,
            managed_by=data.managed_by or actor.admin_id,
        )
        self.db.add(account)
        self._commit("create admin")
        self.db.refresh(account)

        self.audit.record_activity(
            actor.admin_id,
            ActivityAction.CREATE_USER,
            f"New admin created: {account.email}",
            target_type=TargetType.ADMIN,
            target_id=account.admin_id,
            severity=Severity.MEDIUM,
            metadata={"role": role, "admin_level": level},
            meta=meta,
        )
        logger.info(
            f"Created admin: {account.admin_id}",
            extra={"admin_id": actor.admin_id, "target_id": account.admin_id, "action": "create_user"},
        )
        return account

    def list_admins(
        self,
        page: int = 1,
        limit: int = 10,
        role: Optional[str] = None,
        is_active: Optional[bool] = None,
        search: Optional[str] = None,
    ) -> Page:
        query = self.db.query(AdminAccount)
        if role:
            query = query.filter(AdminAccount.role == role)
        if is_active is not None:
            query = query.filter(AdminAccount.is_active == is_active)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                AdminAccount.name.ilike(pattern),
                AdminAccount.email.ilike(pattern),
                AdminAccount.department.ilike(pattern),
            ))
        query = query.order_by(AdminAccount.created_at.desc(), AdminAccount.id.desc())
        return paginate(query, page, limit)

    # ------------------------------------------------------------------
    # Management of other admins
    # ------------------------------------------------------------------

    def update_admin(
        self,
        admin_id: str,
        data: AdminUpdateRequest,
        actor: AdminAccount,
        meta: RequestMeta = NO_META,
    ) -> AdminAccount:
        target = self.get_admin(admin_id)
        self._require_action(actor, target, "edit")

        changes: Dict[str, Any] = data.model_dump(exclude_unset=True)
        if not changes:
            return target

        if changes.get("email") is not None:
            email = str(changes["email"]).strip().lower()
            if email != target.email and self._find_by_email(email) is not None:
                raise ConflictError("Email already exists", details={"email": email})
            changes["email"] = email

        if "role" in changes or "admin_level" in changes:
            role = _value(changes.get("role") or target.role)
            if "admin_level" in changes and changes["admin_level"] is not None:
                level = changes["admin_level"]
            elif "role" in changes:
                level = admin_level_for(role)
            else:
                level = target.admin_level
            self._check_grantable_level(actor, role, level)
            changes["role"] = role
            changes["admin_level"] = level

        if changes.get("permissions") is not None:
            changes["permissions"] = normalize_permissions(changes["permissions"])
        if changes.get("access_level") is not None:
            changes["access_level"] = _value(changes["access_level"])

        for key, value in changes.items():
            if value is None and key not in _NULLABLE_FIELDS:
                continue
            setattr(target, key, value)
        self._commit("update admin")
        self.db.refresh(target)

        self.audit.record_activity(
            actor.admin_id,
            ActivityAction.UPDATE_USER,
            f"Admin updated: {target.email}",
            target_type=TargetType.ADMIN,
            target_id=target.admin_id,
            severity=Severity.MEDIUM,
            metadata={"updatedFields": sorted(changes)},
            meta=meta,
        )
        return target

    def set_status(self, admin_id: str, is_active: bool, actor: AdminAccount, meta: RequestMeta = NO_META) -> AdminAccount:
        target = self.get_admin(admin_id)
        if target.admin_id == actor.admin_id:
            raise ValidationError("Cannot change the status of your own account")
        self._require_action(actor, target, "status")

        target.is_active = is_active
        self._commit("change admin status")
        self.db.refresh(target)

        self.audit.record_activity(
            actor.admin_id,
            ActivityAction.PERMISSION_CHANGE,
            f"Admin status changed to {'active' if is_active else 'inactive'}: {target.email}",
            target_type=TargetType.ADMIN,
            target_id=target.admin_id,
            severity=Severity.MEDIUM,
            metadata={"is_active": is_active},
            meta=meta,
        )
        logger.info(
            f"Admin {target.admin_id} {'activated' if is_active else 'deactivated'}",
            extra={"admin_id": actor.admin_id, "target_id": target.admin_id},
        )
        return target

    def delete_admin(self, admin_id: str, actor: AdminAccount, meta: RequestMeta = NO_META) -> None:
        """Hard delete. Audit rows keep the admin_id as a dangling reference."""
        target = self.get_admin(admin_id)
        if target.admin_id == actor.admin_id:
            raise ValidationError("Cannot delete your own account")
        self._require_action(actor, target, "delete")
        self.engine.require_access_level(actor, AccessLevel.FULL_ACCESS.value)

        email = target.email
        self.db.delete(target)
        self._commit("delete admin")

        self.audit.record_activity(
            actor.admin_id,
            ActivityAction.DELETE_USER,
            f"Admin deleted: {email}",
            target_type=TargetType.ADMIN,
            target_id=admin_id,
            severity=Severity.HIGH,
            meta=meta,
        )
        logger.info(f"Deleted admin: {admin_id}", extra={"admin_id": actor.admin_id, "target_id": admin_id})

    # ------------------------------------------------------------------
    # Self-service
    # ------------------------------------------------------------------

    def update_profile(self, actor: AdminAccount, data: ProfileUpdateRequest, meta: RequestMeta = NO_META) -> AdminAccount:
        changes = {k: v for k, v in data.model_dump(exclude_unset=True).items() if not (k == "name" and v is None)}
        for key, value in changes.items():
            setattr(actor, key, value)
        self._commit("update profile")
        self.db.refresh(actor)

        self.audit.record_activity(
            actor.admin_id,
            ActivityAction.UPDATE_USER,
            "Admin profile updated",
            target_type=TargetType.ADMIN,
            target_id=actor.admin_id,
            severity=Severity.LOW,
            metadata={"updatedFields": sorted(changes)},
            meta=meta,
        )
        return actor

    def change_password(
        self,
        actor: AdminAccount,
        current_password: str,
        new_password: str,
        meta: RequestMeta = NO_META,
    ) -> None:
        if not self.hasher.verify(current_password, actor.password_hash):
            raise ValidationError("Current password is incorrect", details={"field": "current_password"})
        self._check_password(new_password)

        actor.password_hash = self.hasher.hash(new_password)
        self._commit("change password")

        self.audit.record_activity(
            actor.admin_id,
            ActivityAction.SECURITY_UPDATE,
            "Admin password changed",
            target_type=TargetType.ADMIN,
            target_id=actor.admin_id,
            severity=Severity.MEDIUM,
            meta=meta,
        )
        logger.info("Admin password changed", extra={"admin_id": actor.admin_id, "action": "security_update"})

    # ------------------------------------------------------------------
    # Bootstrap
    # ------------------------------------------------------------------

    def seed_super_admin(self, email: str, password: str, name: str = "Super Admin") -> AdminAccount:
        """Create the first super_admin unless the email is already registered."""
        existing = self._find_by_email(email)
        if existing is not None:
            logger.info(f"Super admin already present: {existing.admin_id}")
            return existing
        self._check_password(password)

        role = AdminRole.SUPER_ADMIN.value
        account = AdminAccount(
            admin_id=generate_admin_id(self.id_prefix),
            name=name,
            email=email.strip().lower(),
            password_hash=self.hasher.hash(password),
            role=role,
            admin_level=admin_level_for(role),
            access_level=AccessLevel.FULL_ACCESS.value,
            permissions=ordered(default_admin_permissions(role)),
            is_active=True,
            is_verified=True,
            login_attempts=0,
        )
        self.db.add(account)
        self._commit("seed super admin")
        self.db.refresh(account)
        logger.info(f"Seeded super admin: {account.admin_id}", extra={"admin_id": account.admin_id})
        return account
