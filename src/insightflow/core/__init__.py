"""
Core analytics module.

Contains the canonical models, date ranges and normalization helpers.
"""

from .dates import DateRange, DateRangePreset, TimeUnit, month_range, week_range, year_range
from .models import (
    Account,
    AccountCredentials,
    ChartPoint,
    Dimension,
    LoginCredentials,
    MetricItem,
    MetricTotals,
    ProviderType,
    RealtimeSnapshot,
    SeriesMetric,
    SessionActivity,
    SessionSummary,
    StatValue,
    Stats,
    Team,
    TeamMember,
    UmamiUser,
    Website,
)
from .normalize import gap_fill, normalize_domain, normalize_server_url

__all__ = [
    "Account", "AccountCredentials", "LoginCredentials", "ProviderType",
    "Website", "Stats", "StatValue", "MetricTotals",
    "ChartPoint", "MetricItem", "Dimension", "SeriesMetric",
    "RealtimeSnapshot", "SessionSummary", "SessionActivity",
    "Team", "TeamMember", "UmamiUser",
    "DateRange", "DateRangePreset", "TimeUnit",
    "week_range", "month_range", "year_range",
    "gap_fill", "normalize_server_url", "normalize_domain",
]
