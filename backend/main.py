# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""
FastAPI application.

Responsibilities
----------------
* Instantiate the FastAPI app.
* Register CORS and request-logging middleware.
* Register the error boundary (typed errors → JSON bodies).
* Mount the four feature routers (auth, users, roles, audit).
* Seed the permission catalog, default roles and first Super Admin on
  startup; a failed seed stops the process.
* Expose a /health endpoint for container liveness checks.
"""

import time

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from audit.router import router as audit_router
from audit.service import audit_failure_count
from auth.router import router as auth_router
from core.bootstrap import initialize
from core.config import settings
from core.errors import register_error_handlers
from core.logger import logger
from database import SessionLocal
from roles.router import router as roles_router
from users.router import router as users_router

app = FastAPI(title="Grain POS API", version="1.0.0")

# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------
# Origins come from CORS_ORIGINS in etc/app.conf (comma separated).
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Authorization", "Content-Type"],
)


# ---------------------------------------------------------------------------
# Request-logging middleware
# ---------------------------------------------------------------------------
# Only the URL and metadata are recorded; request bodies (passwords) never are.


class _RequestLogMiddleware(BaseHTTPMiddleware):
    """Log method, path, client IP, acting user, response status and latency (ms)."""

    async def dispatch(self, request: Request, call_next) -> Response:
        start = time.perf_counter()
        response: Response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000

        client_ip = request.client.host if request.client else "unknown"
        # Set by auth.gates.authenticate on protected routes
        ctx = getattr(request.state, "auth", None)

        logger.info(
            "%s %s | client=%s user=%s status=%d latency=%.1fms",
            request.method,
            request.url.path,
            client_ip,
            ctx.user_id if ctx else "-",
            response.status_code,
            elapsed_ms,
        )
        return response


app.add_middleware(_RequestLogMiddleware)

register_error_handlers(app)

# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
app.include_router(auth_router)
app.include_router(users_router)
app.include_router(roles_router)
app.include_router(audit_router)

# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


@app.on_event("startup")
def _on_startup():
    logger.info("Grain POS service starting up")
    try:
        with SessionLocal() as db:
            initialize(db)
    except Exception:
        logger.critical("Bootstrap failed – refusing to start", exc_info=True)
        raise


@app.on_event("shutdown")
def _on_shutdown():
    logger.info("Grain POS service shutting down")


@app.get("/health")
def health():
    return {"status": "ok", "audit_write_failures": audit_failure_count()}
