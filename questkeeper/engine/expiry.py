"""
questkeeper.engine.expiry — Quest Time Limits
==============================================

Quest time limits are free text on the quest board ("2 weeks",
"1 month", "2 weeks 3 days").  Each number belongs to the unit that
follows it and the parts add up; a bare unit ("a week") counts once.  A
month counts as 30 days.  Text without a recognised unit never expires.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from questkeeper.database.models import Quest

_UNITS: dict[str, timedelta] = {
    "hour": timedelta(hours=1),
    "day": timedelta(days=1),
    "week": timedelta(weeks=1),
    "month": timedelta(days=30),
}

_AMOUNT_RE = re.compile(r"(\d+)[\s-]*(hour|day|week|month)s?\b")
_BARE_UNIT_RE = re.compile(r"\b(hour|day|week|month)s?\b")


def as_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes (SQLite round-trips) as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def parse_time_limit(text: str | None) -> timedelta | None:
    """Parse a time-limit string into a duration (``None`` if unparseable)."""
    if not text:
        return None
    lowered = text.lower()
    amounts = _AMOUNT_RE.findall(lowered)
    if amounts:
        return sum((_UNITS[unit] * int(count) for count, unit in amounts), timedelta())
    bare = _BARE_UNIT_RE.search(lowered)
    return _UNITS[bare.group(1)] if bare else None


def expires_at(quest: Quest) -> datetime | None:
    duration = parse_time_limit(quest.time_limit)
    posted = as_utc(quest.posted_at)
    if duration is None or posted is None:
        return None
    return posted + duration


def is_expired(quest: Quest, now: datetime | None = None) -> bool:
    deadline = expires_at(quest)
    if deadline is None:
        return False
    return (now or datetime.now(UTC)) > deadline
