"""Internal error channel for failures that must not reach the caller.

Audit writes and notification delivery are best-effort: when they fail the
business operation still succeeds, and the failure lands here instead. Each
entry is logged at ERROR, counted in Prometheus, and kept in a bounded
in-memory buffer that health checks and tests can inspect.
"""
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional

from coralguard_admin.middleware.monitoring import record_swallowed_failure
from coralguard_admin.utils.clock import utcnow
from coralguard_admin.utils.logger import logger


@dataclass(frozen=True)
class DiagnosticEntry:
    source: str
    error: str
    error_type: str
    occurred_at: datetime
    context: Dict[str, Any] = field(default_factory=dict)


class DiagnosticsSink:
    def __init__(self, capacity: int = 500):
        self._entries: Deque[DiagnosticEntry] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def record(self, source: str, error: BaseException, context: Optional[Dict[str, Any]] = None) -> DiagnosticEntry:
        entry = DiagnosticEntry(
            source=source,
            error=str(error),
            error_type=type(error).__name__,
            occurred_at=utcnow(),
            context=dict(context or {}),
        )
        with self._lock:
            self._entries.append(entry)

        record_swallowed_failure(source)
        logger.error(
            f"Swallowed failure in {source}: {error}",
            extra={"source": source, "error_code": entry.error_type},
            exc_info=(type(error), error, error.__traceback__),
        )
        return entry

    def recent(self, source: Optional[str] = None) -> List[DiagnosticEntry]:
        with self._lock:
            entries = list(self._entries)
        if source is not None:
            entries = [e for e in entries if e.source == source]
        return entries

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
