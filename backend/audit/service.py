# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""
Audit log – the append-only trail written by the authorization gate and by
every module that creates, updates or deletes something.

Write path
----------
``log_action`` commits its row on its own.  Callers commit their business
change first and audit afterwards, so a failed audit write can only lose
the audit row, never the business change.  Failures are rolled back,
reported on the ``grainpos.audit`` logger and counted
(:func:`audit_failure_count`); they are never raised.

Read path
---------
Per-user activity, system-wide filtered activity, per-resource trail,
distinct filter values, aggregate statistics and an Excel export.
"""

import io
import math
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill, Alignment, Border, Side
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from core.logger import audit_logger
from database import utcnow
from models.audit_log import AuditAction, AuditLog

_failure_count = 0
_failure_lock = threading.Lock()


def audit_failure_count() -> int:
    """Number of audit writes dropped since process start."""
    return _failure_count


def _record_failure(entry: dict, exc: Exception) -> None:
    global _failure_count
    # Writes fail from the request threadpool concurrently
    with _failure_lock:
        _failure_count += 1
    audit_logger.error(
        "audit write dropped | action=%s module=%s resource=%s:%s user=%s | %s: %s",
        entry.get("action"),
        entry.get("module"),
        entry.get("resource_type"),
        entry.get("resource_id"),
        entry.get("user_id"),
        type(exc).__name__,
        exc,
    )


# ---------------------------------------------------------------------------
# Write
# ---------------------------------------------------------------------------


def log_action(
    db: Session,
    *,
    user_id: Optional[int],
    action: AuditAction | str,
    module: str,
    resource_type: str,
    resource_id: Any,
    description: str,
    old_values: Optional[dict] = None,
    new_values: Optional[dict] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    session_id: Optional[int] = None,
    meta: Optional[dict] = None,
) -> Optional[AuditLog]:
    """
    Append one audit entry and commit it.

    Returns the stored row, or None when the write failed.  Anything still
    pending in *db* is rolled back on failure, so commit business changes
    before calling this.
    """
    entry = {
        "user_id": user_id,
        "action": action.value if isinstance(action, AuditAction) else str(action),
        "module": module,
        "resource_type": resource_type,
        "resource_id": str(resource_id),
        "description": description,
        "old_values": old_values,
        "new_values": new_values,
        "ip_address": ip_address or "Unknown",
        "user_agent": user_agent or "Unknown",
        "session_id": session_id,
        "meta": meta,
    }
    try:
        row = AuditLog(**entry)
        db.add(row)
        db.commit()
        return row
    except SQLAlchemyError as exc:
        db.rollback()
        _record_failure(entry, exc)
        return None


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------


def _naive_utc(value: datetime) -> datetime:
    """Offset-aware bounds are shifted to UTC; created_at is stored naive UTC."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _filtered(
    db: Session,
    module: Optional[str] = None,
    action: Optional[str] = None,
    resource_type: Optional[str] = None,
    user_id: Optional[int] = None,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
):
    q = db.query(AuditLog)
    if module:
        q = q.filter(AuditLog.module == module)
    if action:
        q = q.filter(AuditLog.action == action)
    if resource_type:
        q = q.filter(AuditLog.resource_type == resource_type)
    if user_id is not None:
        q = q.filter(AuditLog.user_id == user_id)
    if since:
        q = q.filter(AuditLog.created_at >= _naive_utc(since))
    if until:
        q = q.filter(AuditLog.created_at <= _naive_utc(until))
    return q


def _newest_first(q):
    return q.options(joinedload(AuditLog.user)).order_by(AuditLog.created_at.desc(), AuditLog.id.desc())


def get_user_activity_log(db: Session, user_id: int, limit: int = 100, skip: int = 0) -> dict:
    """One page of a single user's entries, newest first."""
    q = _filtered(db, user_id=user_id)
    total = q.count()
    logs = _newest_first(q).offset(skip).limit(limit).all()
    return {"logs": logs, "total": total, "has_more": skip + len(logs) < total}


def get_system_activity(
    db: Session,
    page: int = 1,
    limit: int = 20,
    module: Optional[str] = None,
    action: Optional[str] = None,
    resource_type: Optional[str] = None,
    user_id: Optional[int] = None,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
) -> dict:
    """System-wide activity with optional filters, paginated like the per-user log."""
    skip = (page - 1) * limit
    q = _filtered(db, module, action, resource_type, user_id, since, until)
    total = q.count()
    logs = _newest_first(q).offset(skip).limit(limit).all()
    return {
        "activities": logs,
        "pagination": {
            "current_page": page,
            "total_items": total,
            "items_per_page": limit,
            "total_pages": math.ceil(total / limit) if limit else 0,
            "has_more": skip + len(logs) < total,
        },
    }


def get_resource_audit_trail(db: Session, resource_type: str, resource_id: str, limit: int = 50) -> list[AuditLog]:
    q = _filtered(db, resource_type=resource_type).filter(AuditLog.resource_id == str(resource_id))
    return _newest_first(q).limit(limit).all()


def get_filter_options(db: Session) -> dict:
    """Distinct known values for building filter controls."""

    def _distinct(column) -> list[str]:
        return sorted(v for (v,) in db.query(column).distinct().all() if v is not None)

    return {
        "modules": _distinct(AuditLog.module),
        "actions": _distinct(AuditLog.action),
        "resource_types": _distinct(AuditLog.resource_type),
    }


def get_activity_stats(db: Session) -> dict:
    total = db.query(func.count(AuditLog.id)).scalar() or 0
    recent = (
        db.query(func.count(AuditLog.id))
        .filter(AuditLog.created_at >= utcnow() - timedelta(hours=24))
        .scalar()
        or 0
    )

    def _grouped(column) -> list[dict]:
        count = func.count(AuditLog.id)
        rows = db.query(column, count).group_by(column).order_by(count.desc(), column).all()
        return [{"key": key, "count": n} for key, n in rows]

    return {
        "total_activities": total,
        "recent_activities": recent,
        "module_stats": _grouped(AuditLog.module),
        "action_stats": _grouped(AuditLog.action),
    }


# ---------------------------------------------------------------------------
# Excel export
# ---------------------------------------------------------------------------

_HEADER_FONT  = Font(name="Calibri", size=11, bold=True, color="FFFFFF")
_HEADER_FILL  = PatternFill(start_color="2E7D32", end_color="2E7D32", fill_type="solid")
_HEADER_ALIGN = Alignment(horizontal="center", vertical="center")
_THIN_BORDER  = Border(
    left=Side(style="thin", color="CCCCCC"),
    right=Side(style="thin", color="CCCCCC"),
    top=Side(style="thin", color="CCCCCC"),
    bottom=Side(style="thin", color="CCCCCC"),
)

EXPORT_HEADERS = ["ID", "Time", "User", "Action", "Module", "Resource", "Description", "IP Address"]
_COL_WIDTHS = [8, 20, 28, 12, 14, 28, 60, 16]


def export_audit_logs(
    db: Session,
    module: Optional[str] = None,
    action: Optional[str] = None,
    resource_type: Optional[str] = None,
    user_id: Optional[int] = None,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
) -> tuple[io.BytesIO, int]:
    """
    Render the matching entries to an .xlsx workbook.

    Returns the rewound buffer and the number of data rows written.
    """
    rows = _newest_first(_filtered(db, module, action, resource_type, user_id, since, until)).all()

    wb = Workbook()
    ws = wb.active
    ws.title = "Audit Logs"

    ws.append(EXPORT_HEADERS)
    for cell in ws[1]:
        cell.font = _HEADER_FONT
        cell.fill = _HEADER_FILL
        cell.alignment = _HEADER_ALIGN
        cell.border = _THIN_BORDER

    for row in rows:
        ws.append([
            row.id,
            row.created_at.strftime("%Y-%m-%d %H:%M:%S") if row.created_at else "",
            row.user.email if row.user else "",
            row.action,
            row.module,
            f"{row.resource_type}:{row.resource_id}",
            row.description,
            row.ip_address or "",
        ])
        row_idx = ws.max_row
        for col_idx in range(1, len(EXPORT_HEADERS) + 1):
            ws.cell(row=row_idx, column=col_idx).border = _THIN_BORDER

    for col_idx, width in enumerate(_COL_WIDTHS, start=1):
        ws.column_dimensions[chr(64 + col_idx)].width = width

    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    wb.close()
    return buf, len(rows)
