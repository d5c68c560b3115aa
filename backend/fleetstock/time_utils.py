"""
Timestamps for ledger rows and transfer documents.

Stored datetimes are UTC without tzinfo. The API reads and writes ISO-8601,
always rendering UTC with a trailing "Z".
"""
from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Optional

from .errors import ValidationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def document_period(moment: Optional[datetime] = None) -> str:
    """Numbering period for transfer documents: the calendar year."""
    return str((moment or utcnow()).year)


def _as_naive_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


def isoformat_z(moment: Optional[datetime]) -> Optional[str]:
    """2026-10-18T09:30:00Z; naive values are already UTC."""
    if moment is None:
        return None
    return _as_naive_utc(moment).replace(microsecond=0).isoformat() + "Z"


def parse_filter_bound(value: Optional[str], field: str, *, end_of_day: bool = False) -> Optional[datetime]:
    """
    Parse a start/end list filter.

    A full datetime is converted to UTC when it carries "Z" or an offset. A
    bare date (YYYY-MM-DD) means midnight, or the last instant of that day
    when used as the upper bound, so ?end=2026-10-18 includes the whole day.
    """
    if value is None or not value.strip():
        return None
    text = value.strip()
    if text[-1] in "Zz":
        text = text[:-1] + "+00:00"

    try:
        if len(text) == 10:
            day = date.fromisoformat(text)
            return datetime.combine(day, time.max if end_of_day else time.min)
        moment = datetime.fromisoformat(text)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 date or datetime", field=field)
    return _as_naive_utc(moment)
