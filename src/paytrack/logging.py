"""Package-wide logger.

Configured once on import; every record carries the process session id so
that log lines from the poller thread and the UI can be correlated.
"""
import logging
import sys
import uuid

from paytrack.config import settings

_SESSION_ID = uuid.uuid4().hex[:8]


def get_session_id() -> str:
    """Return the id shared by every log line of this process."""
    return _SESSION_ID


class _SessionFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.session_id = _SESSION_ID
        return True


def _configure() -> logging.Logger:
    log = logging.getLogger("paytrack")
    if log.handlers:
        return log
    handler = logging.StreamHandler(sys.stderr)
    handler.addFilter(_SessionFilter())
    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s [%(session_id)s] %(threadName)s %(name)s: %(message)s"
    ))
    log.addHandler(handler)
    log.setLevel(settings.LOG_LEVEL.upper())
    return log


logger = _configure()
