"""
Tests for the user lifecycle endpoints: creation, role changes,
(de)activation, unlock, admin password reset and hard delete.
"""
from datetime import timedelta

import pytest

from audit import service as audit_service
from conftest import USER_PASSWORD, bearer
from core.errors import ValidationError
from database import utcnow
from models.user import User
from models.user_session import UserSession
from users import service


@pytest.fixture
def clerk(make_user, make_role):
    return make_user("clerk@grainpos.test", make_role("Clerk", ["orders.read"]))


def _create(client, token, **body):
    payload = {"email": "new@grainpos.test", "password": "Welcome123", "full_name": "New Hire"}
    payload.update(body)
    return client.post("/api/users", json=payload, headers=bearer(token))


# ---------------------------------------------------------------------------
# Create / read
# ---------------------------------------------------------------------------


def test_create_user(client, admin_token, default_role, audit_rows):
    resp = _create(client, admin_token, role_id=default_role("Staff").id, email="New@GrainPOS.test", username="Newbie")

    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["email"] == "new@grainpos.test"
    assert data["username"] == "newbie"
    assert data["role"]["name"] == "Staff"
    assert "password_hash" not in data
    rows = audit_rows(module="users", action="CREATE")
    assert len(rows) == 1
    assert rows[0].new_values["role"] == "Staff"


def test_new_user_can_log_in(client, admin_token, login, default_role):
    _create(client, admin_token, role_id=default_role("Staff").id)
    assert login("new@grainpos.test", "Welcome123")


def test_duplicate_email_is_409(client, admin_token, default_role, clerk):
    resp = _create(client, admin_token, role_id=default_role("Staff").id, email=clerk.email)
    assert resp.status_code == 409


def test_inactive_role_cannot_be_assigned(client, admin_token, make_role):
    role = make_role("Retired", is_active=False)
    resp = _create(client, admin_token, role_id=role.id)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Cannot assign an inactive role"


def test_unknown_role_is_404(client, admin_token):
    assert _create(client, admin_token, role_id=99999).status_code == 404


def test_weak_password_is_rejected(client, admin_token, default_role):
    resp = _create(client, admin_token, role_id=default_role("Staff").id, password="weak")
    assert resp.status_code == 400


def test_list_and_get_users(client, admin_token, clerk, login):
    login(clerk.email)

    listing = client.get("/api/users", params={"search": "CLERK"}, headers=bearer(admin_token)).json()
    detail = client.get(f"/api/users/{clerk.id}", headers=bearer(admin_token)).json()["data"]

    assert [u["email"] for u in listing["data"]] == ["clerk@grainpos.test"]
    assert listing["pagination"]["total_users"] == 1
    assert detail["active_sessions_count"] == 1
    assert detail["is_locked"] is False


def test_missing_user_is_404(client, admin_token):
    resp = client.get("/api/users/99999", headers=bearer(admin_token))
    assert resp.status_code == 404
    assert resp.json()["message"] == "User not found"


def test_user_endpoints_need_permissions(client, login, clerk):
    token = login(clerk.email)
    assert client.get("/api/users", headers=bearer(token)).status_code == 403


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


def test_change_role(client, admin_token, clerk, default_role, login):
    token = login(clerk.email)

    resp = client.put(
        f"/api/users/{clerk.id}/role",
        json={"role_id": default_role("Manager").id},
        headers=bearer(admin_token),
    )

    assert resp.status_code == 200
    assert resp.json()["data"]["role"]["name"] == "Manager"
    # Same token, new permissions on the next request
    profile = client.get("/api/auth/profile", headers=bearer(token)).json()["data"]
    assert "users.read" in profile["permissions"]


def test_cannot_change_own_role(db, actor, admin, default_role):
    with pytest.raises(ValidationError):
        service.change_user_role(db, admin.id, default_role("Staff").id, actor())


def test_reactivated_role_can_be_assigned_again(client, admin_token, make_role, clerk):
    role = make_role("Seasonal", ["orders.read"])
    assert client.delete(f"/api/roles/{role.id}", headers=bearer(admin_token)).status_code == 200
    blocked = client.put(f"/api/users/{clerk.id}/role", json={"role_id": role.id}, headers=bearer(admin_token))
    assert blocked.status_code == 400

    assert client.put(f"/api/roles/{role.id}/activate", headers=bearer(admin_token)).status_code == 200
    resp = client.put(f"/api/users/{clerk.id}/role", json={"role_id": role.id}, headers=bearer(admin_token))
    assert resp.status_code == 200


def test_deactivate_and_activate(client, admin_token, clerk, login):
    token = login(clerk.email)

    off = client.put(f"/api/users/{clerk.id}/deactivate", headers=bearer(admin_token))
    assert off.json()["data"]["is_active"] is False
    assert client.get("/api/auth/profile", headers=bearer(token)).status_code == 401

    on = client.put(f"/api/users/{clerk.id}/activate", headers=bearer(admin_token))
    assert on.json()["data"]["is_active"] is True
    assert client.get("/api/auth/profile", headers=bearer(token)).status_code == 200


def test_cannot_deactivate_self(client, admin_token, admin):
    resp = client.put(f"/api/users/{admin.id}/deactivate", headers=bearer(admin_token))
    assert resp.status_code == 400
    assert resp.json()["message"] == "Cannot deactivate your own account"


def test_unlock(client, db, admin_token, clerk):
    clerk.login_attempts = 5
    clerk.lock_until = utcnow() + timedelta(hours=1)
    db.commit()

    resp = client.put(f"/api/users/{clerk.id}/unlock", headers=bearer(admin_token))

    assert resp.status_code == 200
    assert resp.json()["data"]["is_locked"] is False
    assert resp.json()["data"]["login_attempts"] == 0


def test_reset_password_terminates_sessions(client, db, admin_token, clerk, login, audit_rows):
    old = login(clerk.email)

    resp = client.put(
        f"/api/users/{clerk.id}/reset-password",
        json={"new_password": "Replaced123"},
        headers=bearer(admin_token),
    )

    assert resp.status_code == 200
    assert resp.json()["data"]["sessions_ended"] == 1
    db.expire_all()
    session = db.query(UserSession).filter(UserSession.session_token == old).one()
    assert session.is_active is False
    assert session.auto_logout_reason == "password_reset_by_admin"
    after = client.get("/api/auth/profile", headers=bearer(old))
    assert after.status_code == 401
    assert after.json()["message"] == "Session expired or invalid"
    assert login(clerk.email, "Replaced123")
    assert audit_rows(module="users", action="UPDATE")[-1].meta == {"sessions_ended": 1}


def test_reset_password_needs_users_manage(client, login, make_role, make_user, clerk):
    make_user("hr@grainpos.test", make_role("HR", ["users.read", "users.update"]))
    token = login("hr@grainpos.test")

    resp = client.put(
        f"/api/users/{clerk.id}/reset-password",
        json={"new_password": "Replaced123"},
        headers=bearer(token),
    )
    assert resp.status_code == 403


def test_delete_user(client, db, admin_token, clerk, login, audit_rows):
    login(clerk.email)
    clerk_id = clerk.id

    resp = client.delete(f"/api/users/{clerk_id}", headers=bearer(admin_token))

    assert resp.status_code == 200
    db.expire_all()
    assert db.get(User, clerk_id) is None
    assert db.query(UserSession).filter(UserSession.user_id == clerk_id).count() == 0
    # The clerk's own history is left as written
    logins = audit_rows(module="auth", action="LOGIN", user_id=clerk_id)
    assert len(logins) == 1
    assert logins[0].session_id is not None
    assert logins[0].user is None
    history = audit_service.get_user_activity_log(db, clerk_id, limit=10, skip=0)
    assert history["total"] >= 1
    deletes = audit_rows(module="users", action="DELETE")
    assert len(deletes) == 1
    assert deletes[0].resource_id == str(clerk_id)
    assert client.get(f"/api/users/{clerk_id}", headers=bearer(admin_token)).status_code == 404


def test_delete_requires_users_delete(client, login, default_role, make_user, clerk):
    # Admin holds users.manage but not users.delete
    make_user("ops@grainpos.test", default_role("Admin"))
    token = login("ops@grainpos.test")
    assert client.delete(f"/api/users/{clerk.id}", headers=bearer(token)).status_code == 403


def test_cannot_delete_self(db, actor, admin):
    with pytest.raises(ValidationError):
        service.delete_user(db, admin.id, actor())


def test_user_audit_trail(client, admin_token, clerk, login):
    login(clerk.email)
    client.post("/api/auth/login", json={"identifier": clerk.email, "password": "Wrong1234"})

    resp = client.get(f"/api/users/{clerk.id}/audit-trail", headers=bearer(admin_token))

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["total"] == 2
    assert data["logs"][0]["description"] == "Failed login attempt - invalid password"
    assert data["logs"][0]["user_email"] == clerk.email
    assert USER_PASSWORD not in str(data)
