# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""
Centralised logging configuration.

Levels, handlers, rotation and format live in etc/logging.conf and are
applied with the standard-library ``fileConfig`` loader.  The only value
supplied from code is ``log_file``, the path of the rotating log file.
It defaults to ``log/app.log`` under the project root; set
``GRAINPOS_LOG_DIR`` to write somewhere else (containers, read-only
checkouts).

Two handles are exported:
    from core.logger import logger        # general application log
    from core.logger import audit_logger  # audit-trail write failures
"""

import logging
import logging.config
import os
from pathlib import Path

# project root: backend/core/logger.py  →  ../../
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_LOGGING_CONF = _PROJECT_ROOT / "etc" / "logging.conf"


def _log_file() -> Path:
    log_dir = Path(os.environ.get("GRAINPOS_LOG_DIR") or _PROJECT_ROOT / "log")
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir / "app.log"


# Handler args are interpolated against *defaults*; format strings are read
# raw by fileConfig, so their %(asctime)s placeholders are left alone.
# as_posix() keeps Windows backslashes out of the eval'd args tuple.
logging.config.fileConfig(
    _LOGGING_CONF,
    defaults={"log_file": _log_file().as_posix()},
    disable_existing_loggers=False,
)

logger = logging.getLogger("grainpos")
audit_logger = logging.getLogger("grainpos.audit")
