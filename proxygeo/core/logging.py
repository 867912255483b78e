from __future__ import annotations

import logging
import sys

from proxygeo.core.config import get_settings


_LOG_FORMAT = "%(asctime)s level=%(levelname)s logger=%(name)s %(message)s"
_configured = False


def configure_logging(level: str | None = None) -> None:
    # Install a single stdout handler once; API and worker processes both call this.
    global _configured
    root = logging.getLogger()
    root.setLevel((level or get_settings().log_level).upper())
    if _configured:
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    root.addHandler(handler)
    # httpx logs every request at INFO; keep pipeline logs readable.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    _configured = True
