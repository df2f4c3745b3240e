"""Timestamped activity log for one tracking session.

Each distinct progress message is recorded once. Per-employee lines
("Processing employee 7 of 250: ...") are condensed for large runs: only the
first, the last and every crossing of a 20 % bucket are kept.
"""
from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

EMPLOYEE_LINE = re.compile(r"Processing employee (\d+) of (\d+)")
CONDENSE_ABOVE = 10
BUCKET_PCT = 20


@dataclass(frozen=True)
class LogEntry:
    at: datetime
    message: str

    def render(self) -> str:
        return f"{self.at.strftime('%H:%M:%S')}: {self.message}"

    @property
    def is_error(self) -> bool:
        lowered = self.message.lower()
        return "failed" in lowered or "error" in lowered


class ActivityLog:
    def __init__(self, clock: Callable[[], datetime] = datetime.now) -> None:
        self._clock = clock
        self._entries: list[LogEntry] = []
        self._seen: set[str] = set()
        self._last_employee_pct = 0.0

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> tuple[LogEntry, ...]:
        return tuple(self._entries)

    def lines(self) -> list[str]:
        return [e.render() for e in self._entries]

    def record(self, message: str, total_hint: int | None = None) -> bool:
        """Append *message* unless it is a repeat or a condensed employee line.

        Returns True when an entry was added.
        """
        message = message.strip()
        if not message or message in self._seen:
            return False
        if not self._keep_employee_line(message, total_hint):
            return False
        self._seen.add(message)
        self._entries.append(LogEntry(at=self._clock(), message=message))
        return True

    def _keep_employee_line(self, message: str, total_hint: int | None) -> bool:
        match = EMPLOYEE_LINE.search(message)
        if not match:
            return True
        current = int(match.group(1))
        total = int(match.group(2)) or (total_hint or 0)
        if total <= CONDENSE_ABOVE:
            return True
        pct = current / total * 100
        keep = (
            current == 1
            or current == total
            or pct // BUCKET_PCT > self._last_employee_pct // BUCKET_PCT
        )
        if keep:
            self._last_employee_pct = pct
        return keep
