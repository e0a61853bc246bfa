"""Tests for single and bulk user role changes"""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from coralguard_admin.errors import AuthorizationError, NotFoundError, ValidationError
from coralguard_admin.models.activity_log import ActivityLogRecord
from coralguard_admin.models.role_history import RoleHistoryRecord
from coralguard_admin.models.user_account import UserAccount
from coralguard_admin.services.audit_trail import AuditTrail
from coralguard_admin.services.role_changes import RoleChangeCoordinator
from coralguard_admin.services.role_transitions import RoleTransitionValidator

from conftest import RecordingNotifier

REASON = "Verified marine biology credentials"


@pytest.fixture
def coordinator(db, audit, notifier, diagnostics, clock):
    return RoleChangeCoordinator(db, audit, RoleTransitionValidator(), notifier, diagnostics, clock=clock)


def _history(db, user_id=None):
    query = db.query(RoleHistoryRecord)
    if user_id:
        query = query.filter(RoleHistoryRecord.user_id == user_id)
    return query.all()


# ---------------------------------------------------------------------------
# Single change
# ---------------------------------------------------------------------------

def test_change_role_writes_one_history_record(db, coordinator, make_admin, make_user, notifier, clock):
    actor = make_admin(role="admin")
    user = make_user(role="user")

    outcome = coordinator.change_role(user.user_id, "researcher", REASON, actor)

    assert outcome.previous_role == "user"
    assert outcome.new_role == "researcher"
    assert outcome.previous_permissions == ["image_upload"]
    assert outcome.new_permissions == ["image_upload", "advanced_analysis", "data_export", "api_access"]

    db.refresh(user)
    assert user.role == "researcher"
    assert user.role_changed_by == actor.admin_id
    assert user.role_changed_at == clock.now

    history = _history(db, user.user_id)
    assert len(history) == 1
    record = history[0]
    assert record.previous_role == "user"
    assert record.new_role == "researcher"
    assert record.previous_permissions == outcome.previous_permissions
    assert record.new_permissions == user.permissions
    assert record.reason == REASON
    assert record.changed_by == actor.admin_id
    assert record.history_id == outcome.history_id

    activity = db.query(ActivityLogRecord).filter(ActivityLogRecord.action == "permission_change").one()
    assert activity.severity == "medium"
    assert activity.target_id == user.user_id

    assert notifier.calls == [{
        "user_id": user.user_id,
        "event": "user.role_changed",
        "payload": {"previous_role": "user", "new_role": "researcher", "reason": REASON},
    }]


def test_explicit_permissions_override_defaults(db, coordinator, make_admin, make_user):
    actor = make_admin(role="super_admin")
    user = make_user()

    outcome = coordinator.change_role(
        user.user_id, "premium", REASON, actor, permissions=["data_export", "image_upload"]
    )
    assert outcome.new_permissions == ["image_upload", "data_export"]


def test_admin_tokens_cannot_be_granted_to_users(db, coordinator, make_admin, make_user):
    actor = make_admin(role="super_admin")
    user = make_user()

    with pytest.raises(ValidationError):
        coordinator.change_role(user.user_id, "premium", REASON, actor, permissions=["user_management"])
    db.refresh(user)
    assert user.role == "user"


@pytest.mark.parametrize("reason", ["", "too short", "   padded   "])
def test_short_reason_rejected_before_any_write(db, coordinator, make_admin, make_user, notifier, reason):
    actor = make_admin(role="admin")
    user = make_user()

    with pytest.raises(ValidationError):
        coordinator.change_role(user.user_id, "premium", reason, actor)

    db.refresh(user)
    assert user.role == "user"
    assert user.role_changed_by is None
    assert _history(db) == []
    assert notifier.calls == []


def test_missing_user_is_not_found(coordinator, make_admin):
    with pytest.raises(NotFoundError):
        coordinator.change_role("usr_missing", "premium", REASON, make_admin(role="admin"))


def test_disallowed_transition_is_forbidden(db, coordinator, make_admin, make_user):
    actor = make_admin(role="admin")
    user = make_user()

    with pytest.raises(AuthorizationError):
        coordinator.change_role(user.user_id, "scientist", REASON, actor)
    db.refresh(user)
    assert user.role == "user"
    assert _history(db) == []


def test_history_write_failure_does_not_fail_role_change(db, coordinator, make_admin, make_user, diagnostics, monkeypatch):
    actor = make_admin(role="admin")
    user = make_user()

    def broken_persist(self, record):
        raise OperationalError("INSERT INTO role_history", {}, Exception("disk I/O error"))

    monkeypatch.setattr(AuditTrail, "_persist", broken_persist)

    outcome = coordinator.change_role(user.user_id, "premium", REASON, actor)

    assert outcome.new_role == "premium"
    assert outcome.history_id is None
    db.refresh(user)
    assert user.role == "premium"

    sources = {entry.source for entry in diagnostics.recent()}
    assert "audit.role_history" in sources
    assert "audit.activity" in sources


def test_notification_failure_is_swallowed(db, audit, diagnostics, clock, make_admin, make_user):
    failing = RecordingNotifier(fail=True)
    coordinator = RoleChangeCoordinator(db, audit, RoleTransitionValidator(), failing, diagnostics, clock=clock)
    user = make_user()

    outcome = coordinator.change_role(user.user_id, "premium", REASON, make_admin(role="admin"))

    assert outcome.new_role == "premium"
    assert outcome.notification_sent is False
    assert len(failing.calls) == 1
    [entry] = diagnostics.recent("notification")
    assert entry.error_type == "ConnectionError"
    assert entry.context["user_id"] == user.user_id


def test_notify_false_skips_notifier(coordinator, make_admin, make_user, notifier, db):
    user = make_user()
    coordinator.change_role(user.user_id, "premium", REASON, make_admin(role="admin"), notify=False)

    assert notifier.calls == []
    assert _history(db, user.user_id)[0].notification_sent is False


# ---------------------------------------------------------------------------
# Bulk change
# ---------------------------------------------------------------------------

def test_bulk_continues_past_missing_user(db, coordinator, make_admin, make_user):
    actor = make_admin(role="admin")
    u1 = make_user(user_id="usr_u1")
    u3 = make_user(user_id="usr_u3")

    result = coordinator.bulk_change_role(["usr_u1", "usr_u2", "usr_u3"], "premium", REASON, actor)

    assert [o.user.user_id for o in result.successful] == ["usr_u1", "usr_u3"]
    assert len(result.failed) == 1
    assert result.failed[0].user_id == "usr_u2"
    assert result.failed[0].code == "NOT_FOUND"
    assert result.total == 3

    for user in (u1, u3):
        db.refresh(user)
        assert user.role == "premium"
        assert len(_history(db, user.user_id)) == 1

    summary = db.query(ActivityLogRecord).filter(ActivityLogRecord.action == "permission_change").all()
    assert len(summary) == 1
    assert summary[0].severity == "high"
    assert summary[0].log_metadata["failed"] == ["usr_u2"]


def test_bulk_dedupes_ids(db, coordinator, make_admin, make_user):
    actor = make_admin(role="moderator", permissions=["user_management"])
    make_user(user_id="usr_a")
    make_user(user_id="usr_b", role="scientist")

    result = coordinator.bulk_change_role(["usr_a", "usr_b", "usr_a"], "premium", REASON, actor)

    # the current role does not matter, only the target
    assert [o.user.user_id for o in result.successful] == ["usr_a", "usr_b"]
    assert result.failed == []


def test_bulk_rejected_up_front_when_categorically_disallowed(db, coordinator, make_admin, make_user):
    actor = make_admin(role="moderator", permissions=["user_management"])
    user = make_user()

    with pytest.raises(AuthorizationError):
        coordinator.bulk_change_role([user.user_id], "researcher", REASON, actor)
    assert _history(db) == []


def test_bulk_requires_ids_and_reason(coordinator, make_admin):
    actor = make_admin(role="admin")
    with pytest.raises(ValidationError):
        coordinator.bulk_change_role([], "premium", REASON, actor)
    with pytest.raises(ValidationError):
        coordinator.bulk_change_role(["usr_1"], "premium", "short", actor)


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

def test_change_role_endpoint(client: TestClient, db, make_admin, make_user, auth_headers):
    actor = make_admin(role="admin")
    user = make_user()

    response = client.post(
        f"/admin/users/{user.user_id}/change-role",
        json={"newRole": "researcher", "reason": REASON, "notifyUser": False},
        headers=auth_headers(actor),
    )
    assert response.status_code == 200
    data = response.json()
    assert data["previous_role"] == "user"
    assert data["new_role"] == "researcher"
    assert data["user"]["role"] == "researcher"
    assert data["history_id"]


def test_change_role_endpoint_errors(client: TestClient, make_admin, make_user, auth_headers):
    admin = make_admin(role="admin")
    user = make_user()
    headers = auth_headers(admin)

    short = client.post(
        f"/admin/users/{user.user_id}/change-role",
        json={"newRole": "premium", "reason": "nope"},
        headers=headers,
    )
    assert short.status_code == 400
    assert short.json()["error"]["code"] == "VALIDATION_ERROR"

    top = client.post(
        f"/admin/users/{user.user_id}/change-role",
        json={"newRole": "scientist", "reason": REASON},
        headers=headers,
    )
    assert top.status_code == 403

    missing = client.post(
        "/admin/users/usr_nobody/change-role",
        json={"newRole": "premium", "reason": REASON},
        headers=headers,
    )
    assert missing.status_code == 404


def test_change_role_needs_user_management(client: TestClient, make_admin, make_user, auth_headers):
    moderator = make_admin(role="moderator")
    user = make_user()

    response = client.post(
        f"/admin/users/{user.user_id}/change-role",
        json={"newRole": "premium", "reason": REASON},
        headers=auth_headers(moderator),
    )
    assert response.status_code == 403
    assert response.json()["error"]["details"] == {"required_permissions": ["user_management"]}


def test_bulk_endpoint(client: TestClient, make_admin, make_user, auth_headers):
    actor = make_admin(role="admin")
    make_user(user_id="usr_u1")
    make_user(user_id="usr_u3")

    response = client.post(
        "/admin/users/bulk-change-roles",
        json={"userIds": ["usr_u1", "usr_u2", "usr_u3"], "newRole": "premium", "reason": REASON},
        headers=auth_headers(actor),
    )
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 3
    assert [item["user"]["user_id"] for item in data["successful"]] == ["usr_u1", "usr_u3"]
    assert data["failed"] == [{"user_id": "usr_u2", "code": "NOT_FOUND", "message": "User usr_u2 not found"}]


def test_role_history_endpoints(client: TestClient, make_admin, make_user, auth_headers, super_admin):
    actor = make_admin(role="admin")
    user = make_user()
    for role in ("premium", "researcher"):
        client.post(
            f"/admin/users/{user.user_id}/change-role",
            json={"newRole": role, "reason": REASON, "notifyUser": False},
            headers=auth_headers(actor),
        )

    # admin lacks security_management
    assert client.get(f"/admin/users/{user.user_id}/role-history", headers=auth_headers(actor)).status_code == 403

    response = client.get(f"/admin/users/{user.user_id}/role-history", headers=auth_headers(super_admin))
    assert response.status_code == 200
    data = response.json()
    assert [h["new_role"] for h in data["history"]] == ["researcher", "premium"]
    assert data["pagination"]["total"] == 2

    verify = client.get("/admin/users/role-history/verify", headers=auth_headers(super_admin)).json()
    assert verify == {"ledger": "role_history", "valid": True, "total_entries": 2, "broken_at": None}


def test_directory_endpoints(client: TestClient, make_admin, make_user, auth_headers, super_admin):
    make_user(role="user")
    make_user(role="premium", subscription="premium")
    make_user(role="premium", subscription="premium")
    headers = auth_headers(super_admin)

    by_role = client.get("/admin/users/by-role/premium", headers=headers).json()
    assert by_role["pagination"]["total"] == 2
    assert {u["role"] for u in by_role["users"]} == {"premium"}

    assert client.get("/admin/users/by-role/wizard", headers=headers).status_code == 400

    stats = client.get("/admin/users/role-stats", headers=headers).json()
    assert stats["total_users"] == 3
    assert stats["users_by_role"]["premium"] == 2
    assert stats["users_by_role"]["scientist"] == 0
    assert stats["users_by_subscription"] == {"free": 1, "premium": 2}

    moderator = make_admin(role="moderator")
    templates = client.get("/admin/users/role-templates", headers=auth_headers(moderator)).json()
    assert [t["role"] for t in templates] == ["user", "premium", "researcher", "moderator", "scientist"]


def test_role_stats_hides_recent_changes_without_security_management(
    client: TestClient, make_admin, make_user, auth_headers, super_admin
):
    user = make_user()
    changed = client.post(
        f"/admin/users/{user.user_id}/change-role",
        json={"newRole": "premium", "reason": REASON, "notifyUser": False},
        headers=auth_headers(super_admin),
    )
    assert changed.status_code == 200

    viewer = make_admin(role="admin")
    response = client.get("/admin/users/role-stats", headers=auth_headers(viewer))
    assert response.status_code == 200
    assert response.json()["recent_role_changes"] == []
    assert response.json()["users_by_role"]["premium"] == 1
    assert client.get(f"/admin/users/{user.user_id}/role-history", headers=auth_headers(viewer)).status_code == 403

    recent = client.get("/admin/users/role-stats", headers=auth_headers(super_admin)).json()["recent_role_changes"]
    assert len(recent) == 1
    assert recent[0]["reason"] == REASON
    assert recent[0]["changed_by"] == super_admin.admin_id


def test_subscription_update(client: TestClient, db, make_admin, make_user, auth_headers):
    actor = make_admin(role="admin")
    user = make_user(subscription="free")
    headers = auth_headers(actor)

    response = client.put(f"/admin/users/{user.user_id}/subscription", json={"subscription": "enterprise"}, headers=headers)
    assert response.status_code == 200
    assert response.json()["subscription"] == "enterprise"

    bad = client.put(f"/admin/users/{user.user_id}/subscription", json={"subscription": "platinum"}, headers=headers)
    assert bad.status_code == 400
