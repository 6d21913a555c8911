"""Tests for date range presets, units, comparison periods and route parsing."""

from datetime import date, datetime, timedelta

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from insightflow.core.dates import (
    DateRange,
    DateRangePreset,
    TimeUnit,
    month_range,
    week_range,
    year_range,
)
from insightflow.routes.dashboard import _parse_date_range

# Wednesday afternoon
NOW = datetime(2026, 3, 18, 14, 30)


def resolve(preset: str) -> tuple[datetime, datetime]:
    return DateRange.from_preset(preset).resolve(NOW)


class TestPresetResolution:
    """Test calendar-aware preset boundaries."""

    def test_today(self):
        start, end = resolve("today")
        assert start == datetime(2026, 3, 18, 0, 0, 0)
        assert end == datetime(2026, 3, 18, 23, 59, 59)

    def test_yesterday(self):
        start, end = resolve("yesterday")
        assert start == datetime(2026, 3, 17)
        assert end == datetime(2026, 3, 17, 23, 59, 59)

    def test_this_week_starts_monday(self):
        start, end = resolve("week")
        assert start == datetime(2026, 3, 16)
        assert start.weekday() == 0
        assert end.date() == date(2026, 3, 18)

    def test_last_7_days_includes_today(self):
        start, end = resolve("7d")
        assert start == datetime(2026, 3, 12)
        assert end.date() == NOW.date()

    def test_last_30_days(self):
        start, _ = resolve("30d")
        assert start.date() == NOW.date() - timedelta(days=29)

    def test_this_month(self):
        start, end = resolve("month")
        assert start == datetime(2026, 3, 1)
        assert end.date() == NOW.date()

    def test_last_month(self):
        start, end = resolve("last_month")
        assert start == datetime(2026, 2, 1)
        assert end == datetime(2026, 2, 28, 23, 59, 59)

    def test_last_month_in_january_wraps_year(self):
        start, end = DateRange.from_preset("last_month").resolve(datetime(2026, 1, 10))
        assert start == datetime(2025, 12, 1)
        assert end.date() == date(2025, 12, 31)

    def test_this_year(self):
        start, end = resolve("year")
        assert start == datetime(2026, 1, 1)
        assert end.date() == NOW.date()

    def test_last_year(self):
        start, end = resolve("last_year")
        assert start == datetime(2025, 1, 1)
        assert end == datetime(2025, 12, 31, 23, 59, 59)

    def test_custom(self):
        start, end = DateRange.custom(date(2024, 1, 1), date(2024, 1, 31)).resolve(NOW)
        assert start == datetime(2024, 1, 1)
        assert end == datetime(2024, 1, 31, 23, 59, 59)

    def test_every_preset_ends_after_it_starts(self):
        for preset in DateRangePreset:
            if preset is DateRangePreset.CUSTOM:
                continue
            start, end = resolve(preset.value)
            assert start < end, preset


class TestTimeUnit:
    """Test bucket unit selection by span."""

    def test_single_day_is_hourly(self):
        assert DateRange.from_preset("today").unit(NOW) is TimeUnit.HOUR
        assert DateRange.from_preset("yesterday").unit(NOW) is TimeUnit.HOUR

    def test_week_and_month_are_daily(self):
        assert DateRange.from_preset("7d").unit(NOW) is TimeUnit.DAY
        assert DateRange.from_preset("30d").unit(NOW) is TimeUnit.DAY
        assert DateRange.from_preset("last_month").unit(NOW) is TimeUnit.DAY

    def test_long_ranges_are_monthly(self):
        assert DateRange.from_preset("last_year").unit(NOW) is TimeUnit.MONTH

    def test_ninety_day_boundary(self):
        # Jan 1 -> Apr 1 spans 90 whole days
        assert DateRange.custom(date(2025, 1, 1), date(2025, 4, 1)).unit(NOW) is TimeUnit.DAY
        assert DateRange.custom(date(2025, 1, 1), date(2025, 4, 2)).unit(NOW) is TimeUnit.MONTH


class TestPreviousPeriod:
    """Test the immediately preceding comparison window."""

    def test_previous_period_of_7d(self):
        previous_start, previous_end = DateRange.from_preset("7d").previous_period(NOW)
        assert previous_end == datetime(2026, 3, 11, 23, 59, 59)
        assert previous_start == datetime(2026, 3, 5)

    def test_previous_period_is_adjacent_and_same_length(self):
        for preset in DateRangePreset:
            if preset is DateRangePreset.CUSTOM:
                continue
            date_range = DateRange.from_preset(preset)
            start, end = date_range.resolve(NOW)
            previous_start, previous_end = date_range.previous_period(NOW)
            assert previous_end == start - timedelta(seconds=1)
            assert previous_end - previous_start == end - start

    def test_custom_range_preserves_duration(self):
        """10-day range Jan 11-20 compares with Jan 1-10."""
        previous = DateRange.custom(date(2024, 1, 11), date(2024, 1, 20)).previous_range(NOW)
        assert previous.custom_start == date(2024, 1, 1)
        assert previous.custom_end == date(2024, 1, 10)

    def test_single_day_compares_with_day_before(self):
        previous = DateRange.custom(date(2024, 3, 15), date(2024, 3, 15)).previous_range(NOW)
        assert previous.custom_start == previous.custom_end == date(2024, 3, 14)


class TestDateRangeModel:
    """Test construction and identity of ranges."""

    def test_range_id_for_preset(self):
        assert DateRange.from_preset("30d").range_id == "30d"

    def test_range_id_for_custom(self):
        date_range = DateRange.custom(date(2024, 2, 29), date(2024, 3, 1))
        assert date_range.range_id == "custom_2024-02-29_2024-03-01"

    def test_custom_requires_both_dates(self):
        with pytest.raises(ValidationError):
            DateRange(preset=DateRangePreset.CUSTOM, custom_start=date(2024, 1, 1))

    def test_custom_rejects_reversed_dates(self):
        with pytest.raises(ValidationError):
            DateRange.custom(date(2024, 1, 31), date(2024, 1, 1))

    def test_unknown_preset(self):
        with pytest.raises(ValueError):
            DateRange.from_preset("90d")

    def test_ranges_are_hashable_and_comparable(self):
        assert DateRange.from_preset("7d") == DateRange.from_preset("7d")
        assert len({DateRange.from_preset("7d"), DateRange.from_preset("7d")}) == 1

    def test_days_lists_every_calendar_day(self):
        days = DateRange.from_preset("week").days(NOW)
        assert days == [date(2026, 3, 16), date(2026, 3, 17), date(2026, 3, 18)]


class TestCalendarPeriods:
    """Test comparison builders for weeks, months and years."""

    def test_iso_week_clamped_to_today(self):
        date_range = week_range(2026, 12, now=NOW)
        assert date_range.custom_start == date(2026, 3, 16)
        assert date_range.custom_end == date(2026, 3, 18)

    def test_past_iso_week_is_full(self):
        date_range = week_range(2026, 11, now=NOW)
        assert date_range.custom_start == date(2026, 3, 9)
        assert date_range.custom_end == date(2026, 3, 15)

    def test_iso_week_one_can_start_in_previous_year(self):
        date_range = week_range(2026, 1, now=NOW)
        assert date_range.custom_start == date(2025, 12, 29)

    def test_month_range(self):
        date_range = month_range(2026, 2, now=NOW)
        assert date_range.custom_start == date(2026, 2, 1)
        assert date_range.custom_end == date(2026, 2, 28)

    def test_december_month_range(self):
        date_range = month_range(2024, 12, now=NOW)
        assert date_range.custom_end == date(2024, 12, 31)

    def test_current_month_clamped(self):
        assert month_range(2026, 3, now=NOW).custom_end == date(2026, 3, 18)

    def test_year_range(self):
        assert year_range(2025, now=NOW).custom_end == date(2025, 12, 31)
        assert year_range(2026, now=NOW).custom_end == date(2026, 3, 18)


class TestRoutePeriodParsing:
    """Test query parameter parsing in the dashboard routes."""

    def test_preset_period(self):
        assert _parse_date_range("7d") == DateRange.from_preset("7d")

    def test_missing_period_uses_default(self):
        assert _parse_date_range(None, default="month").preset is DateRangePreset.THIS_MONTH

    def test_unknown_period_raises_400(self):
        with pytest.raises(HTTPException) as exc_info:
            _parse_date_range("90d")
        assert exc_info.value.status_code == 400

    def test_custom_date_range(self):
        """Custom start and end dates are parsed correctly."""
        date_range = _parse_date_range("custom", "2024-01-01", "2024-01-31")
        assert date_range.custom_start == date(2024, 1, 1)
        assert date_range.custom_end == date(2024, 1, 31)

    def test_custom_dates_override_period(self):
        """Custom dates take precedence even with period set."""
        date_range = _parse_date_range("30d", "2024-06-01", "2024-06-15")
        assert date_range.preset is DateRangePreset.CUSTOM
        assert date_range.custom_start == date(2024, 6, 1)

    def test_missing_end_date_raises_400(self):
        with pytest.raises(HTTPException) as exc_info:
            _parse_date_range("custom", "2024-01-01", None)
        assert exc_info.value.status_code == 400
        assert "Both start and end dates are required" in exc_info.value.detail

    def test_invalid_date_format_raises_400(self):
        with pytest.raises(HTTPException) as exc_info:
            _parse_date_range("custom", "01-01-2024", "2024-01-31")
        assert exc_info.value.status_code == 400
        assert "YYYY-MM-DD" in exc_info.value.detail

    def test_end_before_start_raises_400(self):
        with pytest.raises(HTTPException) as exc_info:
            _parse_date_range("custom", "2024-01-31", "2024-01-01")
        assert exc_info.value.status_code == 400
        assert "End date must be on or after start date" in exc_info.value.detail

    def test_future_end_date_raises_400(self):
        future = (date.today() + timedelta(days=30)).isoformat()
        with pytest.raises(HTTPException) as exc_info:
            _parse_date_range("custom", "2024-01-01", future)
        assert exc_info.value.status_code == 400
        assert "cannot be in the future" in exc_info.value.detail

    def test_leap_year_date(self):
        date_range = _parse_date_range("custom", "2024-02-29", "2024-03-01")
        assert date_range.custom_start == date(2024, 2, 29)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
