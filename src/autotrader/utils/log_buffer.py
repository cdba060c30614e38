"""
In-memory log buffer served by the status API.
"""

import logging
import threading
from collections import Counter, deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional


class LogBuffer(logging.Handler):
    """
    Logging handler that keeps the most recent records in a ring buffer.

    Records are stored as dicts; the portfolio id is copied out of the
    record's extras when present so portfolio activity can be filtered.
    """

    def __init__(self, max_size: int = 1000):
        super().__init__()
        self.max_size = max_size
        self.buffer: Deque[Dict[str, Any]] = deque(maxlen=max_size)
        self.counts: Counter = Counter()
        self._lock = threading.RLock()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            entry = {
                "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "message": record.getMessage(),
                "portfolio_id": getattr(record, "portfolio_id", None),
            }
            with self._lock:
                self.buffer.append(entry)
                self.counts[record.levelname] += 1
        except Exception:
            self.handleError(record)

    def get_logs(
        self,
        lines: int = 100,
        level: Optional[str] = None,
        search: Optional[str] = None,
        portfolio_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Most recent entries first, optionally filtered."""
        with self._lock:
            logs = list(self.buffer)

        if level:
            logs = [log for log in logs if log["level"] == level.upper()]
        if search:
            needle = search.lower()
            logs = [log for log in logs if needle in log["message"].lower()]
        if portfolio_id:
            logs = [log for log in logs if log["portfolio_id"] == portfolio_id]

        logs.reverse()
        return logs[:lines]

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "total_logs": len(self.buffer),
                "max_size": self.max_size,
                "errors": self.counts["ERROR"],
                "warnings": self.counts["WARNING"],
                "info": self.counts["INFO"],
                "buffer_full": len(self.buffer) >= self.max_size,
            }

    def clear(self) -> None:
        with self._lock:
            self.buffer.clear()
            self.counts.clear()


def setup_log_buffer(max_size: int = 1000) -> LogBuffer:
    """Attach a LogBuffer to the root logger (once) and return it."""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers:
        if isinstance(handler, LogBuffer):
            return handler

    buffer = LogBuffer(max_size=max_size)
    root_logger.addHandler(buffer)
    return buffer
