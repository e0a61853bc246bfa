"""Admin login, bearer-token authentication and the failed-login lockout.

Lockout state machine (threshold and duration from settings, 5 and 2h by
default):

    unlocked, attempts < 5   --fail-->     unlocked, attempts + 1
    unlocked, attempts reach 5 --fail-->   locked until now + 2h
    locked, now < lock_until --any login-> rejected, password never checked
    locked, now >= lock_until --fail-->    unlocked, attempts = 1
    any state                --success-->  unlocked, attempts = 0

The counter increment is a single atomic UPDATE. The lock decision that
follows is a separate write, so concurrent failures may briefly under-count.
"""
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from coralguard_admin.errors import (
    ACCOUNT_INACTIVE,
    ACCOUNT_LOCKED,
    INVALID_CREDENTIALS,
    INVALID_TOKEN,
    AuthenticationError,
    DependencyError,
)
from coralguard_admin.middleware.monitoring import record_auth_failure
from coralguard_admin.models.admin_account import AdminAccount
from coralguard_admin.services.account_rules import is_locked
from coralguard_admin.services.audit_trail import (
    NO_META,
    ActivityAction,
    AuditTrail,
    RequestMeta,
    Severity,
    TargetType,
)
from coralguard_admin.utils.clock import Clock, utcnow
from coralguard_admin.utils.jwt_utils import ADMIN_TOKEN_TYPE, TokenSigner
from coralguard_admin.utils.logger import logger
from coralguard_admin.utils.passwords import PasswordHasher


@dataclass
class LoginResult:
    account: AdminAccount
    token: str
    expires_in: int


class AuthenticationGuard:
    def __init__(
        self,
        db: Session,
        signer: TokenSigner,
        hasher: PasswordHasher,
        audit: AuditTrail,
        clock: Clock = utcnow,
        max_attempts: int = 5,
        lockout_seconds: int = 2 * 60 * 60,
        token_ttl: int = 28800,
    ):
        self.db = db
        self.signer = signer
        self.hasher = hasher
        self.audit = audit
        self.clock = clock
        self.max_attempts = max_attempts
        self.lockout_seconds = lockout_seconds
        self.token_ttl = token_ttl

    def login(self, email: str, password: str, meta: RequestMeta = NO_META) -> LoginResult:
        """Verify credentials and issue an admin token.

        Unknown email, inactive account and wrong password all produce the same
        INVALID_CREDENTIALS error. A locked account gets ACCOUNT_LOCKED before
        the password is looked at.
        """
        email = (email or "").strip().lower()
        account = (
            self.db.query(AdminAccount)
            .filter(AdminAccount.email == email, AdminAccount.is_active == True)  # noqa: E712
            .first()
        )
        if account is None:
            self.hasher.verify_dummy(password)
            record_auth_failure(INVALID_CREDENTIALS)
            logger.info("Login rejected: unknown or inactive account", extra={"error_code": INVALID_CREDENTIALS})
            raise AuthenticationError()

        now = self.clock()
        if is_locked(account, now):
            record_auth_failure(ACCOUNT_LOCKED)
            logger.warning(
                f"Login rejected for locked account {account.admin_id}",
                extra={"admin_id": account.admin_id, "error_code": ACCOUNT_LOCKED},
            )
            raise AuthenticationError(
                "Account is temporarily locked due to too many failed login attempts",
                code=ACCOUNT_LOCKED,
            )

        if not self.hasher.verify(password, account.password_hash):
            self.record_failed_attempt(account)
            record_auth_failure(INVALID_CREDENTIALS)
            raise AuthenticationError()

        account.login_attempts = 0
        account.lock_until = None
        account.last_login = now
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise DependencyError("Could not update login state") from exc
        self.db.refresh(account)

        token = self.signer.issue(
            account.admin_id,
            ADMIN_TOKEN_TYPE,
            self.token_ttl,
            {"email": account.email, "role": account.role},
        )

        self.audit.record_activity(
            account.admin_id,
            ActivityAction.LOGIN,
            f"Admin {account.email} logged in",
            target_type=TargetType.ADMIN,
            target_id=account.admin_id,
            severity=Severity.LOW,
            meta=meta,
        )
        logger.info(f"Admin logged in: {account.admin_id}", extra={"admin_id": account.admin_id, "action": "login"})

        return LoginResult(account=account, token=token, expires_in=self.token_ttl)

    def authenticate(self, token: str) -> AdminAccount:
        """Resolve a bearer token to a freshly loaded, active admin account."""
        try:
            claims = self.signer.decode(token, ADMIN_TOKEN_TYPE)
        except AuthenticationError as exc:
            record_auth_failure(exc.code)
            raise

        account = self.db.query(AdminAccount).filter(AdminAccount.admin_id == claims["sub"]).first()
        if account is None:
            record_auth_failure(INVALID_TOKEN)
            raise AuthenticationError("Admin not found", code=INVALID_TOKEN)
        if not account.is_active:
            record_auth_failure(ACCOUNT_INACTIVE)
            raise AuthenticationError("Admin account is deactivated", code=ACCOUNT_INACTIVE)
        return account

    def record_failed_attempt(self, account: AdminAccount) -> AdminAccount:
        now = self.clock()
        by_id = self.db.query(AdminAccount).filter(AdminAccount.id == account.id)
        try:
            if account.lock_until is not None and not is_locked(account, now):
                # expired lock: restart the count
                by_id.update(
                    {AdminAccount.login_attempts: 1, AdminAccount.lock_until: None},
                    synchronize_session=False,
                )
                self.db.commit()
                self.db.refresh(account)
                return account

            by_id.update(
                {AdminAccount.login_attempts: AdminAccount.login_attempts + 1},
                synchronize_session=False,
            )
            self.db.commit()
            self.db.refresh(account)

            if account.login_attempts >= self.max_attempts and not is_locked(account, now):
                account.lock_until = now + timedelta(seconds=self.lockout_seconds)
                self.db.commit()
                self.db.refresh(account)
                logger.warning(
                    f"Admin account locked after {account.login_attempts} failed logins: {account.admin_id}",
                    extra={"admin_id": account.admin_id, "error_code": ACCOUNT_LOCKED},
                )
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise DependencyError("Could not record failed login") from exc

        return account

    def logout(self, account: AdminAccount, meta: RequestMeta = NO_META) -> None:
        """Tokens stay valid until expiry; logout only leaves an audit entry."""
        self.audit.record_activity(
            account.admin_id,
            ActivityAction.LOGOUT,
            f"Admin {account.email} logged out",
            target_type=TargetType.ADMIN,
            target_id=account.admin_id,
            severity=Severity.LOW,
            meta=meta,
        )
        logger.info(f"Admin logged out: {account.admin_id}", extra={"admin_id": account.admin_id, "action": "logout"})
