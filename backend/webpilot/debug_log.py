"""
In-memory debug log, served by GET /api/logs.
Keeps WARNING+ records from every webpilot.* logger plus the browser console
output forwarded to webpilot.page, newest last.
"""
import logging
from collections import deque
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger("webpilot.debug_log")

PAGE_LOGGER = "webpilot.page"
CAPACITY = 500

_formatter = logging.Formatter()


class RingBufferHandler(logging.Handler):
    """Appends one dict per record to a bounded deque."""

    def __init__(self, capacity: int = CAPACITY):
        super().__init__(level=logging.INFO)
        self.entries: deque[dict] = deque(maxlen=capacity)

    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno < logging.WARNING and not record.name.startswith(PAGE_LOGGER):
            return False
        return super().filter(record)

    def emit(self, record: logging.LogRecord):
        try:
            entry = {
                "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
                "level": record.levelname,
                "levelno": record.levelno,
                "component": record.name,
                "message": record.getMessage(),
                "location": f"{record.module}:{record.lineno}",
            }
            if record.exc_info:
                entry["traceback"] = _formatter.formatException(record.exc_info)
            self.entries.append(entry)
        except Exception:
            self.handleError(record)


_handler: Optional[RingBufferHandler] = None


def init_debug_logger() -> RingBufferHandler:
    """Attach the buffer to the webpilot logger. Safe to call more than once."""
    global _handler
    if _handler is None:
        _handler = RingBufferHandler()
        logging.getLogger("webpilot").addHandler(_handler)
        logger.info("Debug log buffer attached")
    return _handler


def get_buffered_logs(limit: int = 100, level: Optional[str] = None,
                      component: Optional[str] = None) -> list[dict]:
    """Most recent entries, oldest first. `level` is a minimum level name."""
    if _handler is None:
        return []
    entries = list(_handler.entries)
    if level:
        floor = logging.getLevelName(level.upper())
        if isinstance(floor, int):
            entries = [e for e in entries if e["levelno"] >= floor]
    if component:
        entries = [e for e in entries if component.lower() in e["component"].lower()]
    return entries[-limit:] if limit > 0 else []


def clear_logs() -> int:
    if _handler is None:
        return 0
    count = len(_handler.entries)
    _handler.entries.clear()
    return count
