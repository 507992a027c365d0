"""
Logging setup.

WHY: Modules log through logging.getLogger(__name__); this installs the one
handler they all share so uvicorn, SQLAlchemy and application records end up
in the same stream with the same format.
"""

import logging
import sys

from helpdesk.core.config import settings


LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_configured = False


def configure_logging(level: str | None = None) -> None:
    """
    Configure the root logger once per process.

    Args:
        level: Log level name, defaults to settings.LOG_LEVEL
    """
    global _configured

    if _configured:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel((level or settings.LOG_LEVEL).upper())

    _configured = True
