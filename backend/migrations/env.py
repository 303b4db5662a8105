# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""
Alembic environment for the Grain POS schema.

Migrations run on the application's own engine (``database.engine``), so the
connection string comes from DATABASE_URL in etc/app.conf and SQLite gets the
same foreign-key pragma the application relies on.

    alembic upgrade head          # from the project root (alembic.ini)
    alembic upgrade head --sql    # offline: print the DDL instead
"""

import os
import sys

# alembic.ini prepends backend/ already; this keeps ``alembic -c`` from other
# working directories working too.
_BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)

from alembic import context  # noqa: E402

from database import Base, engine  # noqa: E402

# Every model module must be imported so its table is on Base.metadata;
# autogenerate only sees what is registered there.
import models.permission    # noqa: F401, E402
import models.role          # noqa: F401, E402
import models.user          # noqa: F401, E402
import models.user_session  # noqa: F401, E402
import models.audit_log     # noqa: F401, E402

_OPTIONS = {
    "target_metadata": Base.metadata,
    "compare_type": True,
    # SQLite cannot ALTER most constraints in place
    "render_as_batch": engine.dialect.name == "sqlite",
}


def run_migrations_offline() -> None:
    context.configure(
        url=engine.url.render_as_string(hide_password=False),
        literal_binds=True,
        **_OPTIONS,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    with engine.connect() as conn:
        context.configure(connection=conn, **_OPTIONS)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
