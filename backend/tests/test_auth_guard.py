"""Tests for login, token authentication and the failed-login lockout"""
from datetime import timedelta

import pytest

from coralguard_admin.api.deps import get_token_signer
from coralguard_admin.errors import AuthenticationError
from coralguard_admin.models.activity_log import ActivityLogRecord
from coralguard_admin.services.auth_guard import AuthenticationGuard
from coralguard_admin.utils.jwt_utils import USER_TOKEN_TYPE
from coralguard_admin.utils.passwords import PasswordHasher

from conftest import DEFAULT_PASSWORD


class CountingHasher(PasswordHasher):
    def __init__(self):
        super().__init__(rounds=4)
        self.verify_calls = 0

    def verify(self, password, digest):
        self.verify_calls += 1
        return super().verify(password, digest)


@pytest.fixture
def counting_hasher():
    return CountingHasher()


@pytest.fixture
def guard(db, audit, clock, counting_hasher):
    return AuthenticationGuard(db, get_token_signer(), counting_hasher, audit, clock=clock)


@pytest.fixture
def target(make_admin):
    return make_admin(role="admin", email="admin@example.com")


def _fail(guard, email="admin@example.com", password="wrong-password"):
    with pytest.raises(AuthenticationError) as exc:
        guard.login(email, password)
    return exc.value


def test_login_success_issues_admin_token(db, guard, target):
    result = guard.login("Admin@Example.com", DEFAULT_PASSWORD)

    claims = get_token_signer().decode(result.token, "admin")
    assert claims["sub"] == target.admin_id
    assert claims["role"] == "admin"
    assert claims["aud"] == "admin"
    assert result.expires_in == 28800

    login_rows = db.query(ActivityLogRecord).filter(ActivityLogRecord.action == "login").all()
    assert len(login_rows) == 1
    assert login_rows[0].admin_id == target.admin_id


def test_unknown_email_and_wrong_password_look_the_same(guard, target):
    unknown = _fail(guard, email="nobody@example.com", password=DEFAULT_PASSWORD)
    wrong = _fail(guard)
    assert unknown.code == wrong.code == "INVALID_CREDENTIALS"
    assert unknown.message == wrong.message


def test_inactive_account_cannot_log_in(make_admin, guard):
    make_admin(role="moderator", email="off@example.com", is_active=False)
    assert _fail(guard, email="off@example.com", password=DEFAULT_PASSWORD).code == "INVALID_CREDENTIALS"


def test_unknown_and_inactive_emails_still_run_a_password_check(make_admin, guard, counting_hasher):
    make_admin(role="moderator", email="off@example.com", is_active=False)
    checks_before = counting_hasher.verify_calls

    _fail(guard, email="nobody@example.com", password=DEFAULT_PASSWORD)
    assert counting_hasher.verify_calls == checks_before + 1

    _fail(guard, email="off@example.com", password=DEFAULT_PASSWORD)
    assert counting_hasher.verify_calls == checks_before + 2


def test_four_failures_leave_account_unlocked(db, guard, target):
    for _ in range(4):
        assert _fail(guard).code == "INVALID_CREDENTIALS"

    db.refresh(target)
    assert target.login_attempts == 4
    assert target.lock_until is None


def test_fifth_failure_locks_for_two_hours(db, guard, target, clock):
    for _ in range(5):
        assert _fail(guard).code == "INVALID_CREDENTIALS"

    db.refresh(target)
    assert target.login_attempts == 5
    assert target.lock_until == clock.now + timedelta(hours=2)


def test_locked_account_rejected_without_password_check(guard, target, clock, counting_hasher):
    for _ in range(5):
        _fail(guard)
    checks_before = counting_hasher.verify_calls

    clock.advance(hours=1, minutes=59)
    error = _fail(guard, password=DEFAULT_PASSWORD)

    assert error.code == "ACCOUNT_LOCKED"
    assert counting_hasher.verify_calls == checks_before


def test_expired_lock_restarts_the_count(db, guard, target, clock):
    for _ in range(5):
        _fail(guard)

    clock.advance(hours=2, seconds=1)
    assert _fail(guard).code == "INVALID_CREDENTIALS"

    db.refresh(target)
    assert target.login_attempts == 1
    assert target.lock_until is None


def test_success_resets_counter(db, guard, target, clock):
    for _ in range(3):
        _fail(guard)

    guard.login("admin@example.com", DEFAULT_PASSWORD)

    db.refresh(target)
    assert target.login_attempts == 0
    assert target.lock_until is None
    assert target.last_login == clock.now


def test_success_after_expired_lock_clears_lock(db, guard, target, clock):
    for _ in range(5):
        _fail(guard)
    clock.advance(hours=3)

    guard.login("admin@example.com", DEFAULT_PASSWORD)

    db.refresh(target)
    assert target.login_attempts == 0
    assert target.lock_until is None


def test_authenticate_rejects_user_tokens(guard, target):
    token = get_token_signer().issue(target.admin_id, USER_TOKEN_TYPE, 3600)
    with pytest.raises(AuthenticationError) as exc:
        guard.authenticate(token)
    assert exc.value.code == "INVALID_TOKEN"


def test_authenticate_rejects_garbage(guard):
    with pytest.raises(AuthenticationError) as exc:
        guard.authenticate("not-a-jwt")
    assert exc.value.code == "INVALID_TOKEN"


def test_authenticate_rejects_expired_token(guard, target):
    token = get_token_signer().issue(target.admin_id, "admin", -10)
    with pytest.raises(AuthenticationError) as exc:
        guard.authenticate(token)
    assert exc.value.code == "TOKEN_EXPIRED"


def test_authenticate_rejects_deactivated_account(db, guard, target):
    token = guard.login("admin@example.com", DEFAULT_PASSWORD).token
    target.is_active = False
    db.commit()

    with pytest.raises(AuthenticationError) as exc:
        guard.authenticate(token)
    assert exc.value.code == "ACCOUNT_INACTIVE"


def test_authenticate_rejects_deleted_account(db, guard, target):
    token = guard.login("admin@example.com", DEFAULT_PASSWORD).token
    db.delete(target)
    db.commit()

    with pytest.raises(AuthenticationError) as exc:
        guard.authenticate(token)
    assert exc.value.code == "INVALID_TOKEN"
