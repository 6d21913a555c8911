"""
Date range presets, bucket units and comparison periods.

All datetimes are naive local time: a range is what the user's calendar
calls "today" or "this week", and every resolution takes an injectable
``now`` so callers and tests agree on the clock.
"""
from datetime import date, datetime, time, timedelta
from enum import Enum

from pydantic import BaseModel, ConfigDict, model_validator

END_OF_DAY = time(23, 59, 59)

# Whole-day spans up to these limits use the given bucket size
HOURLY_MAX_DAYS = 1
DAILY_MAX_DAYS = 90


class DateRangePreset(str, Enum):
    TODAY = "today"
    YESTERDAY = "yesterday"
    THIS_WEEK = "week"
    LAST_7_DAYS = "7d"
    LAST_30_DAYS = "30d"
    THIS_MONTH = "month"
    LAST_MONTH = "last_month"
    THIS_YEAR = "year"
    LAST_YEAR = "last_year"
    CUSTOM = "custom"


class TimeUnit(str, Enum):
    """Bucket granularity of a time series."""
    HOUR = "hour"
    DAY = "day"
    MONTH = "month"


def local_now(now: datetime | None = None) -> datetime:
    """Current time as naive local datetime (aware inputs are converted)."""
    if now is None:
        return datetime.now()
    return to_local_naive(now)


def to_local_naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


def start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min)


def end_of_day(day: date) -> datetime:
    return datetime.combine(day, END_OF_DAY)


class DateRange(BaseModel):
    """A named preset or an explicit day span."""

    model_config = ConfigDict(frozen=True)

    preset: DateRangePreset
    custom_start: date | None = None
    custom_end: date | None = None

    @model_validator(mode="after")
    def _check_custom(self) -> "DateRange":
        if self.preset is DateRangePreset.CUSTOM:
            if self.custom_start is None or self.custom_end is None:
                raise ValueError("Both start and end dates are required for a custom date range")
            if self.custom_end < self.custom_start:
                raise ValueError("End date must be on or after start date")
        return self

    @classmethod
    def from_preset(cls, preset: str | DateRangePreset) -> "DateRange":
        return cls(preset=DateRangePreset(preset))

    @classmethod
    def custom(cls, start: date, end: date) -> "DateRange":
        if isinstance(start, datetime):
            start = start.date()
        if isinstance(end, datetime):
            end = end.date()
        return cls(preset=DateRangePreset.CUSTOM, custom_start=start, custom_end=end)

    @property
    def range_id(self) -> str:
        """Stable identifier, used as part of cache keys."""
        if self.preset is DateRangePreset.CUSTOM:
            return f"custom_{self.custom_start.isoformat()}_{self.custom_end.isoformat()}"
        return self.preset.value

    def resolve(self, now: datetime | None = None) -> tuple[datetime, datetime]:
        """Concrete (start, end); start at 00:00:00, end at 23:59:59."""
        today = local_now(now).date()
        preset = self.preset

        if preset is DateRangePreset.CUSTOM:
            return start_of_day(self.custom_start), end_of_day(self.custom_end)

        if preset is DateRangePreset.TODAY:
            return start_of_day(today), end_of_day(today)
        if preset is DateRangePreset.YESTERDAY:
            yesterday = today - timedelta(days=1)
            return start_of_day(yesterday), end_of_day(yesterday)
        if preset is DateRangePreset.THIS_WEEK:
            # Weeks start on Monday
            monday = today - timedelta(days=today.weekday())
            return start_of_day(monday), end_of_day(today)
        if preset is DateRangePreset.LAST_7_DAYS:
            return start_of_day(today - timedelta(days=6)), end_of_day(today)
        if preset is DateRangePreset.LAST_30_DAYS:
            return start_of_day(today - timedelta(days=29)), end_of_day(today)
        if preset is DateRangePreset.THIS_MONTH:
            return start_of_day(today.replace(day=1)), end_of_day(today)
        if preset is DateRangePreset.LAST_MONTH:
            last_of_previous = today.replace(day=1) - timedelta(days=1)
            return start_of_day(last_of_previous.replace(day=1)), end_of_day(last_of_previous)
        if preset is DateRangePreset.THIS_YEAR:
            return start_of_day(date(today.year, 1, 1)), end_of_day(today)
        if preset is DateRangePreset.LAST_YEAR:
            year = today.year - 1
            return start_of_day(date(year, 1, 1)), end_of_day(date(year, 12, 31))

        raise ValueError(f"Unhandled preset {preset}")

    def unit(self, now: datetime | None = None) -> TimeUnit:
        start, end = self.resolve(now)
        days = (end.date() - start.date()).days
        if days <= HOURLY_MAX_DAYS:
            return TimeUnit.HOUR
        if days <= DAILY_MAX_DAYS:
            return TimeUnit.DAY
        return TimeUnit.MONTH

    def previous_period(self, now: datetime | None = None) -> tuple[datetime, datetime]:
        """Immediately preceding window of identical duration.

        previous_end is one second before start, so the two windows neither
        overlap nor leave a gap.
        """
        start, end = self.resolve(now)
        previous_end = start - timedelta(seconds=1)
        previous_start = previous_end - (end - start)
        return previous_start, previous_end

    def previous_range(self, now: datetime | None = None) -> "DateRange":
        """The comparison window as an explicit custom range."""
        previous_start, previous_end = self.previous_period(now)
        return DateRange.custom(previous_start.date(), previous_end.date())

    def days(self, now: datetime | None = None) -> list[date]:
        """Every calendar day covered by the range, in order."""
        start, end = self.resolve(now)
        current = start.date()
        result = []
        while current <= end.date():
            result.append(current)
            current += timedelta(days=1)
        return result


# Convenience constants, mirroring the preset list
TODAY = DateRange(preset=DateRangePreset.TODAY)
YESTERDAY = DateRange(preset=DateRangePreset.YESTERDAY)
THIS_WEEK = DateRange(preset=DateRangePreset.THIS_WEEK)
LAST_7_DAYS = DateRange(preset=DateRangePreset.LAST_7_DAYS)
LAST_30_DAYS = DateRange(preset=DateRangePreset.LAST_30_DAYS)
THIS_MONTH = DateRange(preset=DateRangePreset.THIS_MONTH)
LAST_MONTH = DateRange(preset=DateRangePreset.LAST_MONTH)
THIS_YEAR = DateRange(preset=DateRangePreset.THIS_YEAR)
LAST_YEAR = DateRange(preset=DateRangePreset.LAST_YEAR)


# =============================================================================
# Calendar periods for side-by-side comparisons
# =============================================================================

def _clamped(start: date, end: date, now: datetime | None) -> DateRange:
    today = local_now(now).date()
    end = max(start, min(end, today))
    return DateRange.custom(start, end)


def week_range(year: int, week: int, now: datetime | None = None) -> DateRange:
    """ISO calendar week (Monday..Sunday), clamped to today."""
    monday = date.fromisocalendar(year, week, 1)
    return _clamped(monday, monday + timedelta(days=6), now)


def month_range(year: int, month: int, now: datetime | None = None) -> DateRange:
    """Calendar month, clamped to today."""
    first = date(year, month, 1)
    if month == 12:
        last = date(year, 12, 31)
    else:
        last = date(year, month + 1, 1) - timedelta(days=1)
    return _clamped(first, last, now)


def year_range(year: int, now: datetime | None = None) -> DateRange:
    """Calendar year, clamped to today."""
    return _clamped(date(year, 1, 1), date(year, 12, 31), now)
