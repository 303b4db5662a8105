# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""Uniform success envelope shared by every router."""

from typing import Any, Optional


def success(data: Any = None, message: Optional[str] = None, **extra) -> dict:
    """
    Build ``{"success": true, "message": ..., "data": ...}``.

    Extra keyword arguments (``pagination`` for instance) are added at the
    top level next to ``data``.
    """
    body = {"success": True}
    if message is not None:
        body["message"] = message
    if data is not None:
        body["data"] = data
    body.update(extra)
    return body
