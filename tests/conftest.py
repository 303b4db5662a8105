"""
Shared fixtures.

Every test runs against a fresh in-memory SQLite database that has been
seeded by ``initialize`` (permission catalog, default roles, Super Admin).
Configuration is injected through the environment before any backend module
is imported, so ``core.config.settings`` never reads etc/app.conf values
for these keys.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key-0123456789abcdef0123456789abcdef"
os.environ["PASSWORD_HASH_ROUNDS"] = "1000"
os.environ["FIRST_ADMIN_EMAIL"] = "admin@grainpos.test"
os.environ["FIRST_ADMIN_PASSWORD"] = "Admin1234"
os.environ["FIRST_ADMIN_NAME"] = "Test Admin"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from auth import sessions  # noqa: E402
from core.bootstrap import initialize  # noqa: E402
from core.security import hash_password  # noqa: E402
from database import Base, SessionLocal, engine  # noqa: E402
from main import app  # noqa: E402
from models.audit_log import AuditLog  # noqa: E402
from models.permission import Permission  # noqa: E402
from models.role import Role  # noqa: E402
from models.user import User  # noqa: E402

ADMIN_EMAIL = "admin@grainpos.test"
ADMIN_PASSWORD = "Admin1234"
USER_PASSWORD = "Secret123"


@pytest.fixture(autouse=True)
def _database():
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as db:
        initialize(db)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    # Not used as a context manager: the startup hook would seed a second
    # time, and the autouse fixture has already done it.
    return TestClient(app)


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def login(client):
    """Log in over HTTP and return the bearer token."""

    def _login(identifier: str, password: str = USER_PASSWORD) -> str:
        resp = client.post("/api/auth/login", json={"identifier": identifier, "password": password})
        assert resp.status_code == 200, resp.text
        return resp.json()["data"]["token"]

    return _login


@pytest.fixture
def admin_token(login):
    return login(ADMIN_EMAIL, ADMIN_PASSWORD)


@pytest.fixture
def admin(db):
    return db.query(User).filter(User.email == ADMIN_EMAIL).one()


@pytest.fixture
def make_role(db):
    """Create a non-default role holding exactly *permission_names*."""

    def _make(name: str, permission_names=(), is_active: bool = True) -> Role:
        perms = db.query(Permission).filter(Permission.name.in_(list(permission_names))).all()
        role = Role(
            name=name,
            description=f"{name} role",
            permissions=perms,
            is_default=False,
            is_active=is_active,
        )
        db.add(role)
        db.commit()
        db.refresh(role)
        return role

    return _make


@pytest.fixture
def make_user(db):
    def _make(email: str, role: Role, password: str = USER_PASSWORD, **fields) -> User:
        user = User(
            email=email,
            full_name=fields.pop("full_name", email.split("@")[0]),
            password_hash=hash_password(password),
            role_id=role.id,
            **fields,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def default_role(db):
    def _get(name: str) -> Role:
        return db.query(Role).filter(Role.name == name).one()

    return _get


@pytest.fixture
def actor(db):
    """Open a real session for *email* and return its AuthContext."""

    def _actor(email: str = ADMIN_EMAIL, password: str = ADMIN_PASSWORD):
        result = sessions.login(db, email, password)
        return sessions.context_for_session(db, result["session"])

    return _actor


@pytest.fixture
def audit_rows(db):
    """Fresh query over the audit table, optionally filtered by column values."""

    def _rows(**filters):
        db.expire_all()
        q = db.query(AuditLog)
        for column, value in filters.items():
            q = q.filter(getattr(AuditLog, column) == value)
        return q.order_by(AuditLog.id).all()

    return _rows
