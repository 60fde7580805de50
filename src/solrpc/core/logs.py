"""Bounded record of subscription, transport and protocol events."""

from __future__ import annotations

import re
import threading
from collections import deque
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Literal

EventCategory = Literal["subscription", "notification", "transport", "protocol", "system"]
EventSeverity = Literal["info", "warning", "error"]

CATEGORIES = frozenset({"subscription", "notification", "transport", "protocol", "system"})
SEVERITIES = frozenset({"info", "warning", "error"})

# Pubkeys are 32-44 base58 characters, transaction signatures up to 88.
_BASE58_TOKEN = re.compile(r"\b[1-9A-HJ-NP-Za-km-z]{32,88}\b")


def redact(text: str) -> str:
    """Shorten every base58 key or signature in ``text`` to ``abcd…wxyz``."""

    return _BASE58_TOKEN.sub(lambda match: f"{match.group(0)[:4]}…{match.group(0)[-4:]}", text)


@dataclass(slots=True)
class LogEntry:
    timestamp: datetime
    category: EventCategory
    severity: EventSeverity
    message: str


class LogBuffer:
    """Keeps the newest ``max_entries`` events.

    The websocket reader thread and caller threads both record into the
    same buffer, so the deque is only touched under a lock.
    """

    def __init__(self, *, max_entries: int = 200, redaction_enabled: bool = True) -> None:
        self.max_entries = max(max_entries, 1)
        self._redaction_enabled = redaction_enabled
        self._entries: deque[LogEntry] = deque(maxlen=self.max_entries)
        self._lock = threading.Lock()

    def record(self, category: str, message: str, *, severity: str = "info") -> LogEntry:
        """Append one event; unknown categories become ``system`` and unknown severities ``info``."""

        category = category.lower()
        severity = severity.lower()
        entry = LogEntry(
            timestamp=datetime.now(UTC),
            category=category if category in CATEGORIES else "system",  # type: ignore[arg-type]
            severity=severity if severity in SEVERITIES else "info",  # type: ignore[arg-type]
            message=redact(message) if self._redaction_enabled else message,
        )
        with self._lock:
            self._entries.append(entry)
        return entry

    def recent(self, *, category: str | None = None, limit: int = 50) -> list[LogEntry]:
        """Return up to ``limit`` of the newest entries, oldest first."""

        if limit <= 0:
            return []
        with self._lock:
            entries = list(self._entries)
        if category is not None:
            entries = [entry for entry in entries if entry.category == category.lower()]
        return entries[-limit:]


__all__ = ["CATEGORIES", "SEVERITIES", "EventCategory", "EventSeverity", "LogBuffer", "LogEntry", "redact"]
