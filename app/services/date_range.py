"""
app/services/date_range.py

Date-range validation and aggregation-granularity resolution.

Granularity policy
------------------
One policy serves every call site (the insights pipeline and the dataset
builder both go through :func:`resolve_granularity`):

    explicit day|week|month   → returned unchanged
    range_days > 365          → month
    range_days > 90           → week
    otherwise                 → day
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Final

from app.domain.telemetry import Granularity
from app.errors import RangeTooLargeError, ValidationFailedError

DEFAULT_MAX_RANGE_DAYS: Final[int] = 366

MONTH_THRESHOLD_DAYS: Final[int] = 365
WEEK_THRESHOLD_DAYS: Final[int] = 90

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_GRANULARITIES: frozenset[str] = frozenset({"day", "week", "month"})


@dataclass(frozen=True)
class DateRange:
    """
    Validated inclusive date range. ``days`` counts both endpoints.
    """

    start: date
    end: date
    days: int

    @property
    def start_iso(self) -> str:
        return self.start.isoformat()

    @property
    def end_iso(self) -> str:
        return self.end.isoformat()


def parse_iso_date(value: object, *, field: str) -> datetime:
    """
    Parse a strict ``YYYY-MM-DD`` calendar date as a UTC midnight instant.
    """

    if not isinstance(value, str) or not _ISO_DATE_RE.match(value):
        raise ValidationFailedError(
            f"{field} is required and must be a YYYY-MM-DD date",
            details={"field": field, "value": value if isinstance(value, str) else None},
        )
    try:
        parsed = datetime.strptime(value, "%Y-%m-%d")
    except ValueError as exc:
        raise ValidationFailedError(
            f"{field} is not a valid calendar date",
            details={"field": field, "value": value},
        ) from exc
    return parsed.replace(tzinfo=timezone.utc)


def validate_range(
    start_raw: object,
    end_raw: object,
    *,
    max_range_days: int = DEFAULT_MAX_RANGE_DAYS,
) -> DateRange:
    """
    Validate and bound a requested date range.

    Raises
    ------
    ValidationFailedError
        Either date is absent or malformed, or ``start > end``.
    RangeTooLargeError
        The inclusive day count exceeds ``max_range_days``.
    """

    start = parse_iso_date(start_raw, field="fecha_ini")
    end = parse_iso_date(end_raw, field="fecha_fin")

    if start > end:
        raise ValidationFailedError(
            "fecha_ini must be on or before fecha_fin",
            details={"fecha_ini": start_raw, "fecha_fin": end_raw},
        )

    range_days = abs(end - start).days + 1
    if range_days > max_range_days:
        raise RangeTooLargeError(
            f"Date range of {range_days} days exceeds the maximum of {max_range_days} days",
            details={"rangeDays": range_days, "maxRangeDays": max_range_days},
        )

    return DateRange(start=start.date(), end=end.date(), days=range_days)


def resolve_granularity(explicit: str | None, range_days: int) -> Granularity:
    """
    Map an optional explicit granularity and a range length to a bucket unit.

    An explicit ``day``/``week``/``month`` (case-insensitive) always wins;
    any other explicit value is ignored in favour of the automatic policy.
    """

    if explicit is not None:
        candidate = str(explicit).strip().lower()
        if candidate in _GRANULARITIES:
            return candidate  # type: ignore[return-value]

    if range_days > MONTH_THRESHOLD_DAYS:
        return "month"
    if range_days > WEEK_THRESHOLD_DAYS:
        return "week"
    return "day"
