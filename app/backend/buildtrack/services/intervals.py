"""Date-range arithmetic shared by schedule and budget analytics.

Everything here is a pure function of its date arguments. Day counts are
inclusive for overlap (a range from the 1st to the 10th spans ten days) and
exclusive for the straight-line schedule (`end - start` days of elapsed time).
"""

from __future__ import annotations

import calendar
import enum
from datetime import date
from decimal import Decimal

from dateutil.relativedelta import relativedelta

from buildtrack.core.errors import InvalidRange

ZERO_FRACTION = Decimal("0")


class AnalysisPeriod(str, enum.Enum):
    LAST_MONTH = "last-month"
    LAST_3_MONTHS = "last-3-months"
    LAST_6_MONTHS = "last-6-months"
    LAST_YEAR = "last-year"

    @property
    def months(self) -> int:
        return _PERIOD_MONTHS[self]


_PERIOD_MONTHS = {
    AnalysisPeriod.LAST_MONTH: 1,
    AnalysisPeriod.LAST_3_MONTHS: 3,
    AnalysisPeriod.LAST_6_MONTHS: 6,
    AnalysisPeriod.LAST_YEAR: 12,
}

DEFAULT_PERIOD = AnalysisPeriod.LAST_6_MONTHS


def parse_period(value: str | None, default: AnalysisPeriod = DEFAULT_PERIOD) -> AnalysisPeriod:
    """Map a period string to an `AnalysisPeriod`; unknown values fall back to the default."""

    if value is None:
        return default
    try:
        return AnalysisPeriod(value.strip().lower())
    except ValueError:
        return default


def period_window(period: AnalysisPeriod, today: date) -> tuple[date, date]:
    """Start/end pair ending today; month arithmetic clamps to the last valid day."""

    return today - relativedelta(months=period.months), today


def validate_window(window_start: date, window_end: date) -> None:
    if window_end < window_start:
        raise InvalidRange(
            f"Window end {window_end.isoformat()} is before window start {window_start.isoformat()}.",
            start=window_start,
            end=window_end,
        )


def overlap_fraction(range_start: date, range_end: date, window_start: date, window_end: date) -> Decimal:
    """Share of the range's inclusive days that fall inside the window, in [0, 1].

    A malformed range (end before start) yields 0 instead of failing; a
    malformed window raises `InvalidRange`.
    """

    validate_window(window_start, window_end)

    total_range_days = (range_end - range_start).days + 1
    if total_range_days <= 0:
        return ZERO_FRACTION

    overlap_days = (min(range_end, window_end) - max(range_start, window_start)).days + 1
    if overlap_days <= 0:
        return ZERO_FRACTION
    return Decimal(overlap_days) / Decimal(total_range_days)


def planned_progress_at(range_start: date, range_end: date, as_of: date) -> float:
    """Straight-line planned completion percentage of a range on a given date."""

    if as_of < range_start:
        return 0.0
    if as_of > range_end:
        return 100.0

    total_days = (range_end - range_start).days
    if total_days <= 0:
        # Single-day range evaluated on its only day.
        return 0.0
    elapsed_days = (as_of - range_start).days
    return elapsed_days / total_days * 100


def month_start(value: date) -> date:
    return date(value.year, value.month, 1)


def month_end(value: date) -> date:
    return date(value.year, value.month, calendar.monthrange(value.year, value.month)[1])


def month_sequence(start: date, end: date) -> list[date]:
    """First day of every calendar month touched by [start, end]."""

    current = month_start(start)
    last = month_start(end)
    months: list[date] = []
    while current <= last:
        months.append(current)
        if current.month == 12:
            current = date(current.year + 1, 1, 1)
        else:
            current = date(current.year, current.month + 1, 1)
    return months
