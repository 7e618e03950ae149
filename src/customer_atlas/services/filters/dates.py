"""Strict parsing of user-entered date bounds."""

from __future__ import annotations

import calendar
import re
from datetime import datetime, timezone
from typing import Optional

_YEAR_PATTERN = re.compile(r"^\d{4}$")
_MDY_PATTERN = re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})$")


def parse_flexible_date(value: Optional[str], *, is_end: bool) -> Optional[datetime]:
    """Parse ``yyyy`` or ``mm-dd-yyyy`` into the start (or end) of that period.

    Anything else returns ``None`` so partially typed input never filters.
    Months clamp to 1-12 and days to the length of the month.
    """

    if not value or not value.strip():
        return None
    text = value.strip()

    if _YEAR_PATTERN.match(text):
        year = int(text)
        if year < 1:
            return None
        if is_end:
            return datetime(year, 12, 31, 23, 59, 59, 999000)
        return datetime(year, 1, 1)

    match = _MDY_PATTERN.match(text)
    if match:
        month = max(1, min(12, int(match.group(1))))
        year = int(match.group(3))
        if year < 1:
            return None
        last_day = calendar.monthrange(year, month)[1]
        day = max(1, min(last_day, int(match.group(2))))
        if is_end:
            return datetime(year, month, day, 23, 59, 59, 999000)
        return datetime(year, month, day)

    return None


def parse_registered_at(value: Optional[str]) -> Optional[datetime]:
    """Parse a customer's ISO registration timestamp; ``None`` when unparsable."""

    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def resolve_date_bounds(
    date_from: Optional[str], date_to: Optional[str]
) -> tuple[Optional[datetime], Optional[datetime]]:
    """Parse both bounds, swapping reversed entries.

    When ``from`` lies after ``to`` the two inputs trade places before
    expanding to period start/end, so ``2023``..``2022`` covers both years.
    """

    lower = parse_flexible_date(date_from, is_end=False)
    upper = parse_flexible_date(date_to, is_end=True)
    if lower is not None and upper is not None and lower > upper:
        lower = parse_flexible_date(date_to, is_end=False)
        upper = parse_flexible_date(date_from, is_end=True)
    return lower, upper
