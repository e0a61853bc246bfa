"""Tests for the audit ledgers: querying, append-only guards and hash chains"""
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import update
from sqlalchemy.exc import OperationalError

from coralguard_admin.models.activity_log import ActivityLogRecord
from coralguard_admin.models.immutable import ImmutableRecordError
from coralguard_admin.models.role_history import RoleHistoryRecord
from coralguard_admin.services.audit_trail import AuditTrail, RequestMeta, activity_link
from coralguard_admin.utils import chain


@pytest.fixture
def trail(db, diagnostics, clock):
    return AuditTrail(db, diagnostics, clock)


def _seed_activity(trail, clock, count=3, admin_id="adm_alpha"):
    results = []
    for i in range(count):
        results.append(trail.record_activity(
            admin_id,
            "update_user",
            f"Edit number {i}",
            target_type="User",
            target_id=f"usr_{i}",
            severity="high" if i == 0 else "low",
            meta=RequestMeta("10.0.0.7", "pytest"),
        ))
        clock.advance(minutes=1)
    return results


def test_record_activity_links_chain(db, trail, clock):
    first, second = _seed_activity(trail, clock, count=2)
    assert first.ok and second.ok

    rows = db.query(ActivityLogRecord).order_by(ActivityLogRecord.id).all()
    _, _, _, _, first_content = activity_link(rows[0])
    _, _, _, _, second_content = activity_link(rows[1])
    assert rows[0].previous_hash == chain.first_hash(rows[0].log_id, "update_user", first_content)
    assert rows[1].previous_hash == chain.compute_hash(
        rows[0].log_id, rows[0].timestamp, rows[1].log_id, "update_user", second_content
    )
    assert rows[0].ip_address == "10.0.0.7"

    check = trail.verify_activity_chain()
    assert check.valid and check.total_entries == 2 and check.broken_at is None


def test_query_activity_newest_first_with_filters(trail, clock):
    start = clock.now
    _seed_activity(trail, clock, count=3)
    trail.record_activity("adm_beta", "login", "Logged in")

    page = trail.query_activity(admin_id="adm_alpha", limit=2)
    assert page.total == 3
    assert [r.description for r in page.items] == ["Edit number 2", "Edit number 1"]
    assert page.pagination() == {"page": 1, "limit": 2, "total": 3, "pages": 2, "has_next": True, "has_prev": False}

    assert trail.query_activity(severity="high").total == 1
    assert trail.query_activity(action="login").items[0].admin_id == "adm_beta"
    assert trail.query_activity(target_id="usr_1").total == 1
    window = trail.query_activity(start=start + timedelta(seconds=30), end=start + timedelta(minutes=1, seconds=30))
    assert [r.description for r in window.items] == ["Edit number 1"]


def test_orm_update_and_delete_are_refused(db, trail, clock):
    _seed_activity(trail, clock, count=1)
    row = db.query(ActivityLogRecord).one()

    row.description = "rewritten"
    with pytest.raises(ImmutableRecordError):
        db.commit()
    db.rollback()

    db.delete(row)
    with pytest.raises(ImmutableRecordError):
        db.commit()
    db.rollback()

    assert db.query(ActivityLogRecord).one().description == "Edit number 0"


def test_tampered_row_breaks_activity_chain(db, trail, clock):
    _seed_activity(trail, clock, count=3)
    rows = db.query(ActivityLogRecord).order_by(ActivityLogRecord.id).all()

    # Core UPDATE skips the ORM guard, as a direct database edit would
    db.execute(
        update(ActivityLogRecord)
        .where(ActivityLogRecord.log_id == rows[1].log_id)
        .values(action="delete_user")
    )
    db.commit()

    check = trail.verify_activity_chain()
    assert check.valid is False
    assert check.broken_at == rows[1].log_id
    assert check.total_entries == 3


@pytest.mark.parametrize(
    "values",
    [
        {"admin_id": "adm_intruder"},
        {"description": "Nothing happened here"},
        {"severity": "low"},
    ],
)
def test_edited_activity_content_breaks_chain(db, trail, clock, values):
    _seed_activity(trail, clock, count=3)
    first = db.query(ActivityLogRecord).order_by(ActivityLogRecord.id).first()

    db.execute(update(ActivityLogRecord).where(ActivityLogRecord.id == first.id).values(**values))
    db.commit()

    check = trail.verify_activity_chain()
    assert check.valid is False
    assert check.broken_at == first.log_id


def test_tampered_role_history_is_detected(db, trail, clock):
    for role in ("premium", "researcher"):
        trail.record_role_change("usr_1", "user", role, ["image_upload"], ["image_upload"], "Seasonal survey lead", "adm_1")
        clock.advance(seconds=5)
    assert trail.verify_role_history_chain().valid

    last = db.query(RoleHistoryRecord).order_by(RoleHistoryRecord.id.desc()).first()
    db.execute(update(RoleHistoryRecord).where(RoleHistoryRecord.id == last.id).values(new_role="scientist"))
    db.commit()

    check = trail.verify_role_history_chain()
    assert check.valid is False
    assert check.broken_at == last.history_id


def test_rewritten_reason_and_actor_break_role_history_chain(db, trail, clock):
    for role in ("premium", "researcher", "moderator"):
        trail.record_role_change("usr_1", "user", role, ["image_upload"], ["image_upload"], "Seasonal survey lead", "adm_1")
        clock.advance(seconds=5)
    assert trail.verify_role_history_chain().valid

    middle = db.query(RoleHistoryRecord).order_by(RoleHistoryRecord.id).all()[1]
    db.execute(
        update(RoleHistoryRecord)
        .where(RoleHistoryRecord.id == middle.id)
        .values(changed_by="adm_someone_else", reason="Rewritten after the fact")
    )
    db.commit()

    check = trail.verify_role_history_chain()
    assert check.valid is False
    assert check.broken_at == middle.history_id
    assert check.total_entries == 3

def test_audit_write_failure_is_reported_not_raised(trail, diagnostics, monkeypatch):
    def broken_persist(self, record):
        raise OperationalError("INSERT INTO activity_logs", {}, Exception("database is locked"))

    monkeypatch.setattr(AuditTrail, "_persist", broken_persist)

    result = trail.record_activity("adm_alpha", "login", "Logged in")

    assert result.ok is False
    assert result.record_id is None
    assert "database is locked" in result.error
    [entry] = diagnostics.recent("audit.activity")
    assert entry.context["admin_id"] == "adm_alpha"


def test_empty_ledger_is_valid(trail):
    check = trail.verify_activity_chain()
    assert check.valid and check.total_entries == 0


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

def test_activity_endpoint_requires_user_management(client: TestClient, make_admin, auth_headers):
    moderator = make_admin(role="moderator")
    response = client.get("/admin/logs/activity", headers=auth_headers(moderator))
    assert response.status_code == 403


def test_activity_endpoint_and_verify(client: TestClient, make_admin, make_user, super_admin, auth_headers):
    admin = make_admin(role="admin")
    user = make_user()
    client.post(
        f"/admin/users/{user.user_id}/change-role",
        json={"newRole": "premium", "reason": "Paid for the annual plan", "notifyUser": False},
        headers={**auth_headers(admin), "User-Agent": "reef-console/1.0"},
    )

    response = client.get(
        "/admin/logs/activity",
        params={"admin_id": admin.admin_id, "action": "permission_change"},
        headers=auth_headers(admin),
    )
    assert response.status_code == 200
    [entry] = response.json()["logs"]
    assert entry["target_type"] == "User"
    assert entry["target_id"] == user.user_id
    assert entry["metadata"]["new_role"] == "premium"
    assert entry["user_agent"] == "reef-console/1.0"

    # admin lacks security_management
    assert client.get("/admin/logs/activity/verify", headers=auth_headers(admin)).status_code == 403

    verify = client.get("/admin/logs/activity/verify", headers=auth_headers(super_admin)).json()
    assert verify["ledger"] == "activity_logs"
    assert verify["valid"] is True
    assert verify["total_entries"] == 1


def test_stats_reports_swallowed_failures(client: TestClient, diagnostics, make_admin):
    make_admin(role="admin")
    diagnostics.record("notification", ConnectionError("webhook down"))

    stats = client.get("/health/stats").json()
    assert stats["admins"] == {"total": 1, "active": 1}
    assert stats["swallowed_failures"] == {"notification": 1}
