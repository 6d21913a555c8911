"""
Normalization helpers: gap-free time series, timestamp parsing, and
server URL / site domain canonicalization.
"""
import logging
from datetime import date, datetime, timedelta

from .dates import DateRange, DateRangePreset, TimeUnit, local_now, to_local_naive
from .models import ChartPoint

logger = logging.getLogger(__name__)


# =============================================================================
# Timestamps
# =============================================================================

def parse_timestamp(raw: str) -> datetime:
    """Parse an upstream timestamp into naive local time.

    Accepts ISO 8601 with or without offset ("Z" included), with or without
    fractional seconds, "YYYY-MM-DD HH:MM:SS" and bare "YYYY-MM-DD". Values
    without an offset are taken to be local already.
    """
    value = raw.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise ValueError(f"Unrecognized timestamp '{raw}'") from None
    return to_local_naive(parsed)


# =============================================================================
# Gap filling
# =============================================================================

def _bucket_key(timestamp: datetime, unit: TimeUnit) -> tuple:
    if unit is TimeUnit.HOUR:
        return (timestamp.date(), timestamp.hour)
    if unit is TimeUnit.DAY:
        return (timestamp.date(),)
    return (timestamp.year, timestamp.month)


def _buckets(date_range: DateRange, unit: TimeUnit, now: datetime) -> list[datetime]:
    start, end = date_range.resolve(now)

    if unit is TimeUnit.HOUR:
        if date_range.preset is DateRangePreset.TODAY:
            day, last_hour = now.date(), now.hour
        elif date_range.preset is DateRangePreset.YESTERDAY:
            day, last_hour = now.date() - timedelta(days=1), 23
        else:
            day, last_hour = start.date(), 23
        base = datetime.combine(day, datetime.min.time())
        return [base + timedelta(hours=hour) for hour in range(last_hour + 1)]

    if unit is TimeUnit.DAY:
        buckets = []
        current: date = start.date()
        while current <= end.date():
            buckets.append(datetime.combine(current, datetime.min.time()))
            current += timedelta(days=1)
        return buckets

    return [datetime(start.year, month, 1) for month in range(1, 13)]


def gap_fill(
    points: list[ChartPoint],
    date_range: DateRange,
    now: datetime | None = None,
) -> list[ChartPoint]:
    """Return one point per bucket of the range's unit, zero where absent.

    Raw points are matched by same day+hour, same day or same month; when
    several raw points land in one bucket the first one wins. Bucket
    timestamps are the bucket starts in local time.
    """
    now = local_now(now)
    unit = date_range.unit(now)
    buckets = _buckets(date_range, unit, now)

    if not buckets:
        return list(points)

    by_bucket: dict[tuple, int] = {}
    for point in points:
        key = _bucket_key(to_local_naive(point.timestamp), unit)
        by_bucket.setdefault(key, point.value)

    return [
        ChartPoint(timestamp=bucket, value=by_bucket.get(_bucket_key(bucket, unit), 0))
        for bucket in buckets
    ]


# =============================================================================
# URLs and domains
# =============================================================================

def normalize_server_url(raw: str) -> str:
    """Trim whitespace and trailing slashes; default to https."""
    url = raw.strip().rstrip("/")
    if not url.lower().startswith(("http://", "https://")):
        url = f"https://{url}"
    return url


def normalize_domain(raw: str) -> str:
    """Bare lowercase host for a Plausible site, e.g. "example.com"."""
    domain = raw.strip().lower()
    domain = domain.removeprefix("https://").removeprefix("http://")
    domain = domain.rstrip("/")
    return domain.removeprefix("www.")
