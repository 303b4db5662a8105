# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""
Bootstrap script – seeds the permission catalog, the default roles and the
first Super Admin.

Run once after the initial migration:
    python bin/seed.py

The Super Admin is read from FIRST_ADMIN_EMAIL / FIRST_ADMIN_PASSWORD /
FIRST_ADMIN_NAME in etc/app.conf.  Re-running is safe: existing rows are
refreshed, never duplicated.
"""

import sys
import os

# ---------------------------------------------------------------------------
# Path setup so backend modules are importable
# ---------------------------------------------------------------------------
# bin/seed.py  →  ../  →  project root
_PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
_BACKEND_DIR  = os.path.join(_PROJECT_ROOT, "backend")
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)

from core.bootstrap import initialize   # noqa: E402
from database import SessionLocal       # noqa: E402


def seed():
    with SessionLocal() as db:
        result = initialize(db)

    perms = result["permissions"]
    roles = result["roles"]
    print(f"[seed] permissions: {perms['created']} created, {perms['existing']} existing")
    print(f"[seed] roles: {roles['created']} created, {roles['refreshed']} refreshed")
    print(f"[seed] super admin: {'created' if result['admin_created'] else 'unchanged'}")


if __name__ == "__main__":
    seed()
