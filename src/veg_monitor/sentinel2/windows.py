"""Calendar-month windowing for monthly statistics.

Every window is made of month-start dates (day 1) and only contains
months that have fully elapsed relative to a reference instant; the
in-progress month is never part of a window.

Example:
    >>> month_window(date(2025, 11, 5), 3)
    [datetime.date(2025, 8, 1), datetime.date(2025, 9, 1), datetime.date(2025, 10, 1)]
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import List, Union

MONTH_LABEL_FORMAT = "%Y-%m"

DateLike = Union[date, datetime]


@dataclass(frozen=True)
class MonthInterval:
    """Half-open calendar month ``[start, end)``.

    Attributes:
        start: First day of the month.
        end: First day of the following month (excluded).
    """
    start: date
    end: date

    def stac_datetime(self) -> str:
        """Format the interval as a closed STAC ``datetime`` range."""
        last_day = self.end - timedelta(days=1)
        return f"{self.start.isoformat()}T00:00:00Z/{last_day.isoformat()}T23:59:59.999Z"


def floor_to_month(moment: DateLike) -> date:
    """Truncate a date or datetime to the first day of its month."""
    return date(moment.year, moment.month, 1)


def add_months(month_start: DateLike, months: int) -> date:
    """Shift a month start by a (possibly negative) number of months.

    The input is truncated to day 1 before shifting.
    """
    index = month_start.year * 12 + (month_start.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def last_full_month(now: DateLike) -> date:
    """Start of the most recently completed calendar month before ``now``."""
    return add_months(floor_to_month(now), -1)


def month_window(now: DateLike, count: int) -> List[date]:
    """Build an ascending list of ``count`` full-month starts ending at the last full month.

    Args:
        now: Reference instant; its own month is always excluded.
        count: Number of months in the window.

    Returns:
        Contiguous month starts ``[s, s+1mo, ..., last_full_month(now)]``.
        Empty when ``count`` is 0.

    Raises:
        ValueError: If count is negative.
    """
    if count < 0:
        raise ValueError(f"Month count must be non-negative, got {count}")
    if count == 0:
        return []
    start = add_months(last_full_month(now), -(count - 1))
    return [add_months(start, offset) for offset in range(count)]


def month_interval(month_start: DateLike) -> MonthInterval:
    start = floor_to_month(month_start)
    return MonthInterval(start=start, end=add_months(start, 1))


def month_label(month_start: DateLike) -> str:
    """Format a month start as ``YYYY-MM``."""
    return month_start.strftime(MONTH_LABEL_FORMAT)


def parse_month_label(label: str) -> date:
    """Parse a ``YYYY-MM`` label into its month start.

    Raises:
        ValueError: If the label is not a valid ``YYYY-MM`` string.
    """
    try:
        parsed = datetime.strptime(label.strip(), MONTH_LABEL_FORMAT)
    except ValueError as exc:
        raise ValueError(f"Invalid month label '{label}'; expected YYYY-MM") from exc
    return parsed.date()


__all__ = [
    "MONTH_LABEL_FORMAT",
    "MonthInterval",
    "floor_to_month",
    "add_months",
    "last_full_month",
    "month_window",
    "month_interval",
    "month_label",
    "parse_month_label",
]
