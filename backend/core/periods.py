# core/periods.py
from __future__ import annotations
import calendar
from dataclasses import dataclass
from datetime import date, timedelta
from typing import List

from models.report import PeriodGranularity

MONTH_ABBR = [
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
]


@dataclass(frozen=True)
class Period:
    key: str
    label: str
    start: date  # inclusive
    end: date  # inclusive

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    def contains(self, d: date) -> bool:
        return self.start <= d <= self.end


def _month_end(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


def _calendar_block(d: date, granularity: PeriodGranularity):
    """(block_start, block_end, key, label) of the calendar block containing d."""
    if granularity == PeriodGranularity.MONTHLY:
        start = date(d.year, d.month, 1)
        end = _month_end(d.year, d.month)
        return start, end, f"{d.year}-{d.month:02d}", f"{MONTH_ABBR[d.month - 1]} {d.year}"
    if granularity == PeriodGranularity.QUARTERLY:
        q = (d.month - 1) // 3 + 1
        start = date(d.year, 3 * (q - 1) + 1, 1)
        end = _month_end(d.year, 3 * q)
        return start, end, f"{d.year}-Q{q}", f"Q{q} {d.year}"
    if granularity == PeriodGranularity.YEARLY:
        return date(d.year, 1, 1), date(d.year, 12, 31), f"{d.year}", f"{d.year}"
    raise ValueError(f"Unsupported granularity: {granularity!r}")


def bucket_periods(
    start: date, end: date, granularity: PeriodGranularity
) -> List[Period]:
    """
    Calendar-aligned periods covering [start, end], first and last clipped to
    the range. Output is ascending, contiguous and non-overlapping, so the
    sum of period days equals the range length.
    """
    if end < start:
        raise ValueError(f"Invalid range: {start} > {end}")
    granularity = PeriodGranularity(granularity)

    periods: List[Period] = []
    cursor = start
    while cursor <= end:
        block_start, block_end, key, label = _calendar_block(cursor, granularity)
        periods.append(
            Period(
                key=key,
                label=label,
                start=max(block_start, start),
                end=min(block_end, end),
            )
        )
        cursor = block_end + timedelta(days=1)
    return periods


def split_span(start: date, end: date, boundaries: List[date], labels: List[str]) -> List[Period]:
    """
    Consecutive periods from start, the i-th ending on boundaries[i] (clamped
    to [start, end]). Boundaries that add no day yield no period.
    """
    if end < start:
        raise ValueError(f"Invalid range: {start} > {end}")
    out: List[Period] = []
    cursor = start
    for boundary, label in zip(boundaries, labels):
        boundary = min(max(boundary, start), end)
        if boundary < cursor:
            continue
        out.append(Period(key=label, label=label, start=cursor, end=boundary))
        cursor = boundary + timedelta(days=1)
    return out


def median_date(start: date, end: date) -> date:
    return start + timedelta(days=(end - start).days // 2)
