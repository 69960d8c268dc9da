"""Daily capture windows.

Parses strings like "08:00-18:00,22:00-02:00" into time-of-day windows. The
capture loop skips ticks that fall outside every window; an empty spec means
capture around the clock.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time
from typing import List, Optional

from .log import get_logger

log = get_logger(__name__)


def _parse_hhmm(s: str) -> time:
    """Parse "HH:MM" (24-hour) into a `datetime.time`."""
    h, m = s.strip().split(":", 1)
    return time(int(h), int(m))


@dataclass(frozen=True)
class CaptureWindow:
    """One daily window; wraps past midnight when `end <= start`."""

    start: time  # inclusive
    end: time  # exclusive

    def contains(self, t: time) -> bool:
        if self.end > self.start:
            return self.start <= t < self.end
        return t >= self.start or t < self.end


class CaptureSchedule:
    """Set of daily windows during which capturing is allowed."""

    def __init__(self, spec: str = "") -> None:
        """Parse a comma-separated window spec.

        Malformed fragments are logged and skipped. If the spec is non-empty
        but nothing parses, the schedule stays always-on rather than never
        capturing.
        """
        self.windows: List[CaptureWindow] = []
        for part in (spec or "").split(","):
            part = part.strip()
            if not part:
                continue
            try:
                a, b = part.split("-", 1)
                self.windows.append(CaptureWindow(_parse_hhmm(a), _parse_hhmm(b)))
            except ValueError:
                log.warning("Ignoring malformed capture window %r", part)

    @property
    def always_on(self) -> bool:
        return not self.windows

    def is_active(self, when: Optional[datetime] = None) -> bool:
        """Return True if captures are allowed at `when` (default: now, local time)."""
        if self.always_on:
            return True
        t = (when or datetime.now()).time()
        return any(w.contains(t) for w in self.windows)
