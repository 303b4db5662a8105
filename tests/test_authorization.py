"""
Tests for the authorization gate: permission / any / all / role policies,
denial auditing, fail-closed behaviour and the dependency factories as a
collaborator module would use them.
"""
import pytest
from fastapi import APIRouter, Depends, FastAPI
from fastapi.testclient import TestClient

from auth import gates
from auth.context import AuthContext
from auth.sessions import context_for_session
from conftest import bearer
from core.errors import (
    AuthenticationRequired,
    AuthorizationFailed,
    InsufficientPermissions,
    register_error_handlers,
)
from core.responses import success
from models.permission import Permission
from models.user_session import UserSession
from roles import service


@pytest.fixture
def customers_client():
    """A stand-in business module guarded the way real collaborators are."""
    router = APIRouter(prefix="/api/customers")

    @router.get("")
    def list_customers(ctx: AuthContext = Depends(gates.authorize("customers.read"))):
        return success(data=[])

    @router.post("")
    def create_customer(ctx: AuthContext = Depends(gates.authorize("customers.create"))):
        return success(message="created")

    @router.get("/report")
    def report(ctx: AuthContext = Depends(gates.authorize_all(["customers.read", "reports.read"]))):
        return success(data={})

    @router.get("/managers")
    def managers_only(ctx: AuthContext = Depends(gates.authorize_role(["Manager", "Super Admin"]))):
        return success(data={"role": ctx.role_name})

    app = FastAPI()
    register_error_handlers(app)
    app.include_router(router)
    return TestClient(app)


@pytest.fixture
def reader(make_role, make_user):
    role = make_role("Customer Reader", ["customers.read"])
    user = make_user("reader@grainpos.test", role)
    return user, role


@pytest.fixture
def reader_ctx(db, reader, actor):
    user, _ = reader
    return actor(user.email, "Secret123")


# ---------------------------------------------------------------------------
# Plain functions
# ---------------------------------------------------------------------------


def test_grant_writes_nothing(db, reader_ctx, audit_rows):
    before = len(audit_rows())
    gates.require_permission(db, reader_ctx, "customers.read")
    assert len(audit_rows()) == before


def test_denial_writes_exactly_one_auth_entry(db, reader_ctx, audit_rows):
    with pytest.raises(InsufficientPermissions):
        gates.require_permission(db, reader_ctx, "customers.create")

    rows = audit_rows(module="auth", action="READ")
    assert len(rows) == 1
    row = rows[0]
    assert row.resource_type == "Permission"
    assert row.resource_id == "customers.create"
    assert row.user_id == reader_ctx.user_id
    assert row.session_id == reader_ctx.session_id


def test_role_edit_changes_outcome_without_new_login(db, reader, actor):
    user, role = reader
    ctx = actor(user.email, "Secret123")
    with pytest.raises(InsufficientPermissions):
        gates.require_permission(db, ctx, "customers.create")

    admin_ctx = actor()
    ids = [p.id for p in db.query(Permission).filter(Permission.name.in_(["customers.read", "customers.create"]))]
    service.update_role_permissions(db, role.id, ids, admin_ctx)

    # Same session, context rebuilt as the gate does on the next request
    session = db.get(UserSession, ctx.session_id)
    gates.require_permission(db, context_for_session(db, session), "customers.create")


def test_any_permission(db, reader_ctx, audit_rows):
    gates.require_any_permission(db, reader_ctx, ["customers.delete", "customers.read"])

    with pytest.raises(InsufficientPermissions):
        gates.require_any_permission(db, reader_ctx, ["customers.delete", "orders.read"])

    row = audit_rows(module="auth")[-1]
    assert row.resource_id == "customers.delete,orders.read"


def test_all_permissions_names_first_missing(db, reader_ctx, audit_rows):
    gates.require_all_permissions(db, reader_ctx, ["customers.read"])

    with pytest.raises(InsufficientPermissions):
        gates.require_all_permissions(db, reader_ctx, ["customers.read", "reports.read", "stock.read"])

    rows = audit_rows(module="auth")
    assert len(rows) == 1
    assert rows[0].description == "Unauthorized access attempt - missing: reports.read"


def test_role_gate(db, reader_ctx, audit_rows):
    gates.require_role(db, reader_ctx, ["Customer Reader"])

    with pytest.raises(InsufficientPermissions) as exc:
        gates.require_role(db, reader_ctx, ["Manager"])

    assert exc.value.message == "Insufficient role permissions"
    row = audit_rows(module="auth")[-1]
    assert row.resource_type == "Role"
    assert row.resource_id == str(reader_ctx.role_id)
    assert "Has: Customer Reader" in row.description


def test_missing_context_is_401(db):
    with pytest.raises(AuthenticationRequired):
        gates.require_permission(db, None, "customers.read")


class _Exploding:
    def __iter__(self):
        raise RuntimeError("boom")


def test_unexpected_failure_fails_closed(db, reader_ctx):
    with pytest.raises(AuthorizationFailed) as exc:
        gates.require_any_permission(db, reader_ctx, _Exploding())
    assert exc.value.status_code == 500


def test_factories_reject_empty_lists():
    with pytest.raises(ValueError):
        gates.authorize_any([])
    with pytest.raises(ValueError):
        gates.authorize_all([])
    with pytest.raises(ValueError):
        gates.authorize_role([])


def test_context_is_immutable(reader_ctx):
    with pytest.raises(AttributeError):
        reader_ctx.role_name = "Super Admin"
    assert isinstance(reader_ctx.permissions, frozenset)


# ---------------------------------------------------------------------------
# Through HTTP
# ---------------------------------------------------------------------------


def test_reader_cannot_create_customer(customers_client, login, reader, audit_rows):
    token = login("reader@grainpos.test")
    before = len(audit_rows(module="auth"))

    ok = customers_client.get("/api/customers", headers=bearer(token))
    denied = customers_client.post("/api/customers", headers=bearer(token))

    assert ok.status_code == 200
    assert denied.status_code == 403
    assert denied.json() == {"success": False, "message": "Insufficient permissions"}
    assert len(audit_rows(module="auth")) == before + 1


def test_all_and_role_dependencies(customers_client, login, admin_token, reader):
    token = login("reader@grainpos.test")

    assert customers_client.get("/api/customers/report", headers=bearer(token)).status_code == 403
    assert customers_client.get("/api/customers/report", headers=bearer(admin_token)).status_code == 200
    assert customers_client.get("/api/customers/managers", headers=bearer(token)).status_code == 403
    resp = customers_client.get("/api/customers/managers", headers=bearer(admin_token))
    assert resp.json()["data"] == {"role": "Super Admin"}


def test_unauthenticated_request_never_reaches_the_policy(customers_client, audit_rows):
    before = len(audit_rows())
    resp = customers_client.post("/api/customers")
    assert resp.status_code == 401
    assert len(audit_rows()) == before


def test_role_edit_over_http_applies_to_the_same_token(client, login, admin_token, make_role, make_user, db):
    role = make_role("Auditor", ["audit.read"])
    make_user("auditor@grainpos.test", role)
    token = login("auditor@grainpos.test")
    assert client.get("/api/roles", headers=bearer(token)).status_code == 403

    roles_read = db.query(Permission).filter(Permission.name == "roles.read").one()
    audit_read = db.query(Permission).filter(Permission.name == "audit.read").one()
    resp = client.put(
        f"/api/roles/{role.id}/permissions",
        json={"permissions": [audit_read.id, roles_read.id]},
        headers=bearer(admin_token),
    )
    assert resp.status_code == 200

    assert client.get("/api/roles", headers=bearer(token)).status_code == 200
