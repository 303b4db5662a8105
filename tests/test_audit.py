"""
Tests for the audit log: the never-raising write path, the read views and
the Excel export.
"""
import io
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta, timezone

import pytest
from openpyxl import load_workbook
from sqlalchemy.exc import OperationalError

from audit import service
from conftest import bearer
from database import utcnow
from models.audit_log import AuditAction, AuditLog


def _write(db, n=1, **overrides):
    for i in range(n):
        fields = {
            "user_id": None,
            "action": AuditAction.UPDATE,
            "module": "orders",
            "resource_type": "Order",
            "resource_id": i + 1,
            "description": f"entry {i}",
        }
        fields.update(overrides)
        service.log_action(db, **fields)


# ---------------------------------------------------------------------------
# Write path
# ---------------------------------------------------------------------------


def test_log_action_stores_every_field(db, admin):
    row = service.log_action(
        db,
        user_id=admin.id,
        action=AuditAction.APPROVE,
        module="orders",
        resource_type="Order",
        resource_id=17,
        description="Approved order 17",
        old_values={"status": "pending"},
        new_values={"status": "approved"},
        ip_address="10.0.0.5",
        user_agent="pytest",
        meta={"batch": "A1"},
    )

    db.expire_all()
    stored = db.get(AuditLog, row.id)
    assert stored.action == "APPROVE"
    assert stored.resource_id == "17"
    assert stored.old_values == {"status": "pending"}
    assert stored.new_values == {"status": "approved"}
    assert stored.meta == {"batch": "A1"}
    assert stored.ip_address == "10.0.0.5"


def test_missing_request_metadata_defaults_to_unknown(db):
    row = service.log_action(
        db, user_id=None, action="LOGIN", module="auth",
        resource_type="User", resource_id=1, description="x",
    )
    assert row.ip_address == "Unknown"
    assert row.user_agent == "Unknown"


def test_storage_failure_is_swallowed_and_counted(db, monkeypatch):
    def _broken_commit():
        raise OperationalError("INSERT", {}, Exception("disk full"))

    monkeypatch.setattr(db, "commit", _broken_commit)
    before = service.audit_failure_count()

    result = service.log_action(
        db, user_id=None, action=AuditAction.CREATE, module="roles",
        resource_type="Role", resource_id=1, description="never stored",
    )

    assert result is None
    assert service.audit_failure_count() == before + 1


def test_health_reports_audit_failures(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "audit_write_failures": service.audit_failure_count()}


def test_concurrent_failures_are_all_counted():
    before = service.audit_failure_count()
    entry = {"action": "UPDATE", "module": "orders", "resource_type": "Order", "resource_id": 1}

    with ThreadPoolExecutor(max_workers=8) as pool:
        for _ in range(400):
            pool.submit(service._record_failure, entry, RuntimeError("down"))

    assert service.audit_failure_count() == before + 400


# ---------------------------------------------------------------------------
# Read path
# ---------------------------------------------------------------------------


def test_user_activity_log_pages_newest_first(db, admin):
    _write(db, 5, user_id=admin.id)

    page = service.get_user_activity_log(db, admin.id, limit=2, skip=0)

    assert page["total"] == 5
    assert page["has_more"] is True
    assert [r.description for r in page["logs"]] == ["entry 4", "entry 3"]
    last = service.get_user_activity_log(db, admin.id, limit=2, skip=4)
    assert last["has_more"] is False


def test_system_activity_filters_and_pagination(db):
    _write(db, 3, module="orders")
    _write(db, 2, module="stock", action=AuditAction.DELETE)

    result = service.get_system_activity(db, page=1, limit=2, module="orders")
    assert result["pagination"] == {
        "current_page": 1,
        "total_items": 3,
        "items_per_page": 2,
        "total_pages": 2,
        "has_more": True,
    }
    assert all(r.module == "orders" for r in result["activities"])

    deletes = service.get_system_activity(db, action="DELETE")
    assert deletes["pagination"]["total_items"] == 2


def test_system_activity_time_window(db):
    _write(db, 2)
    future = service.get_system_activity(db, since=utcnow() + timedelta(hours=1))
    assert future["pagination"]["total_items"] == 0


def test_time_window_honours_utc_offsets(db):
    _write(db, 2)
    ist = timezone(timedelta(hours=5, minutes=30))
    now = utcnow().replace(tzinfo=timezone.utc)

    # An hour ago and an hour ahead, written as Indian and US Eastern wall time
    since = (now - timedelta(hours=1)).astimezone(ist)
    until = (now + timedelta(hours=1)).astimezone(timezone(timedelta(hours=-5)))
    window = service.get_system_activity(db, module="orders", since=since, until=until)
    assert window["pagination"]["total_items"] == 2

    later = service.get_system_activity(db, since=(now + timedelta(minutes=10)).astimezone(ist))
    assert later["pagination"]["total_items"] == 0


def test_resource_trail(db):
    _write(db, 1, resource_type="Order", resource_id=9, description="first")
    _write(db, 1, resource_type="Order", resource_id=9, description="second")
    _write(db, 1, resource_type="Order", resource_id=10, description="other")

    trail = service.get_resource_audit_trail(db, "Order", "9")

    assert [r.description for r in trail] == ["second", "first"]


def test_filter_options_are_sorted_and_distinct(db):
    _write(db, 2, module="stock")
    _write(db, 1, module="orders", action=AuditAction.CREATE)

    options = service.get_filter_options(db)

    assert options["modules"] == sorted(set(options["modules"]))
    assert {"orders", "stock"} <= set(options["modules"])
    assert {"CREATE", "UPDATE"} <= set(options["actions"])


def test_activity_stats(db):
    _write(db, 3, module="stock")
    _write(db, 1, module="orders")

    stats = service.get_activity_stats(db)

    assert stats["total_activities"] == 4
    assert stats["recent_activities"] == 4
    assert stats["module_stats"][0] == {"key": "stock", "count": 3}
    assert stats["action_stats"] == [{"key": "UPDATE", "count": 4}]


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


def test_activity_endpoint(client, admin_token):
    resp = client.get("/api/audit/activity", params={"module": "auth"}, headers=bearer(admin_token))

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["pagination"]["total_items"] == 1
    entry = data["activities"][0]
    assert entry["action"] == "LOGIN"
    assert entry["user_email"] == "admin@grainpos.test"


def test_activity_endpoint_accepts_offset_bounds(client, admin_token):
    ist = timezone(timedelta(hours=5, minutes=30))
    since = (utcnow().replace(tzinfo=timezone.utc) - timedelta(hours=1)).astimezone(ist)

    resp = client.get(
        "/api/audit/activity",
        params={"module": "auth", "since": since.isoformat()},
        headers=bearer(admin_token),
    )

    assert resp.status_code == 200
    assert resp.json()["data"]["pagination"]["total_items"] == 1


def test_filters_and_stats_endpoints(client, admin_token):
    filters = client.get("/api/audit/filters", headers=bearer(admin_token)).json()["data"]
    stats = client.get("/api/audit/stats", headers=bearer(admin_token)).json()["data"]

    assert filters["modules"] == ["auth"]
    assert stats["total_activities"] == 1


def test_resource_endpoint(client, db, admin_token):
    _write(db, 1, resource_type="Order", resource_id=5)
    resp = client.get("/api/audit/resource/Order/5", headers=bearer(admin_token))
    assert resp.status_code == 200
    assert len(resp.json()["data"]) == 1


def test_audit_views_need_audit_read(client, login, make_role, make_user):
    make_user("clerk@grainpos.test", make_role("Clerk", ["orders.read"]))
    token = login("clerk@grainpos.test")

    for path in ("/api/audit/activity", "/api/audit/filters", "/api/audit/stats", "/api/audit/resource/Order/1"):
        assert client.get(path, headers=bearer(token)).status_code == 403


def test_export_requires_audit_manage(client, login, make_role, make_user):
    make_user("auditor@grainpos.test", make_role("Auditor", ["audit.read"]))
    token = login("auditor@grainpos.test")

    assert client.get("/api/audit/export", headers=bearer(token)).status_code == 403


def test_export_returns_workbook_and_is_audited(client, db, admin_token, audit_rows):
    _write(db, 3, module="stock")

    resp = client.get("/api/audit/export", params={"module": "stock"}, headers=bearer(admin_token))

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith(
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    )
    assert "attachment" in resp.headers["content-disposition"]
    ws = load_workbook(io.BytesIO(resp.content)).active
    rows = list(ws.iter_rows(values_only=True))
    assert list(rows[0]) == service.EXPORT_HEADERS
    assert len(rows) == 4

    exports = audit_rows(action="EXPORT")
    assert len(exports) == 1
    assert exports[0].description == "Exported 3 audit log entries"
    assert exports[0].meta == {"module": "stock"}


@pytest.mark.parametrize("path", ["/api/audit/activity", "/api/audit/export"])
def test_audit_endpoints_need_a_token(client, path):
    assert client.get(path).status_code == 401
