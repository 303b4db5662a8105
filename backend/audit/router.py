# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""
Audit endpoints – read-only views over the audit trail and the Excel export.

All filters are optional and combine with AND:

* ``module`` / ``action`` / ``resource_type`` – exact match
* ``user_id``         – acting user
* ``since`` / ``until`` – ISO-8601 bounds on ``created_at``
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from audit import service
from audit.schemas import AuditLogRow
from auth.context import AuthContext
from auth.gates import authorize
from core.responses import success
from database import get_db, utcnow
from models.audit_log import AuditAction

router = APIRouter(prefix="/api/audit", tags=["audit"])


@router.get("/activity")
def system_activity(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=500),
    module: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
    resource_type: Optional[str] = Query(None),
    user_id: Optional[int] = Query(None),
    since: Optional[datetime] = Query(None, description="ISO-8601 start of time window"),
    until: Optional[datetime] = Query(None, description="ISO-8601 end of time window"),
    ctx: AuthContext = Depends(authorize("audit.read")),
    db: Session = Depends(get_db),
):
    result = service.get_system_activity(
        db, page=page, limit=limit, module=module, action=action,
        resource_type=resource_type, user_id=user_id, since=since, until=until,
    )
    return success(
        data={
            "activities": [AuditLogRow.from_entry(row) for row in result["activities"]],
            "pagination": result["pagination"],
        }
    )


@router.get("/filters")
def filter_options(
    ctx: AuthContext = Depends(authorize("audit.read")),
    db: Session = Depends(get_db),
):
    return success(data=service.get_filter_options(db))


@router.get("/stats")
def activity_stats(
    ctx: AuthContext = Depends(authorize("audit.read")),
    db: Session = Depends(get_db),
):
    return success(data=service.get_activity_stats(db))


@router.get("/resource/{resource_type}/{resource_id}")
def resource_trail(
    resource_type: str,
    resource_id: str,
    limit: int = Query(50, ge=1, le=500),
    ctx: AuthContext = Depends(authorize("audit.read")),
    db: Session = Depends(get_db),
):
    rows = service.get_resource_audit_trail(db, resource_type, resource_id, limit=limit)
    return success(data=[AuditLogRow.from_entry(row) for row in rows])


# ---------------------------------------------------------------------------
# GET /api/audit/export  – download matching entries as Excel
# ---------------------------------------------------------------------------


@router.get("/export")
def export(
    module: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
    resource_type: Optional[str] = Query(None),
    user_id: Optional[int] = Query(None),
    since: Optional[datetime] = Query(None),
    until: Optional[datetime] = Query(None),
    ctx: AuthContext = Depends(authorize("audit.manage")),
    db: Session = Depends(get_db),
):
    filters = {
        "module": module,
        "action": action,
        "resource_type": resource_type,
        "user_id": user_id,
        "since": since,
        "until": until,
    }
    buf, count = service.export_audit_logs(db, **filters)

    # The export itself is part of the trail
    service.log_action(
        db,
        action=AuditAction.EXPORT,
        module="audit",
        resource_type="AuditLog",
        resource_id="export",
        description=f"Exported {count} audit log entries",
        meta={k: (v.isoformat() if isinstance(v, datetime) else v) for k, v in filters.items() if v is not None},
        **ctx.audit_fields(),
    )

    filename = f"audit-logs-{utcnow():%Y%m%d-%H%M%S}.xlsx"
    return StreamingResponse(
        buf,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
