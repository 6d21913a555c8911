"""
Website detail: stats, live visitors, both series and every breakdown the
provider supports for one site.
"""
import logging
from datetime import datetime

from pydantic import BaseModel

from ..cache import AnalyticsCache, CacheKey, CacheKind
from ..core.dates import DateRange
from ..core.models import Account, ChartPoint, Dimension, MetricItem, SeriesMetric, Stats
from ..core.normalize import gap_fill
from ..errors import is_session_problem
from ..providers import AnalyticsProvider
from .parallel import parallel_queries

logger = logging.getLogger(__name__)


class WebsiteDetail(BaseModel):
    site_id: str
    date_range: DateRange
    stats: Stats | None = None
    active_visitors: int | None = None
    pageviews: list[ChartPoint] = []
    visitors: list[ChartPoint] = []
    breakdowns: dict[Dimension, list[MetricItem]] = {}
    errors: dict[str, str] = {}
    is_offline: bool = False
    needs_reauth: bool = False
    cached_at: datetime | None = None


class WebsiteDetailLoader:
    def __init__(self, provider: AnalyticsProvider, cache: AnalyticsCache, breakdown_limit: int = 10):
        self.provider = provider
        self.cache = cache
        self.breakdown_limit = breakdown_limit

    async def load(self, account: Account, site_id: str, date_range: DateRange) -> WebsiteDetail:
        provider = self.provider
        range_key = CacheKey(account.id, site_id, date_range.range_id)

        def series(metric: SeriesMetric):
            async def fetch() -> list[ChartPoint]:
                points = await provider.get_time_series(site_id, date_range, metric)
                return gap_fill(points, date_range)

            return self.cache.read_through(
                CacheKind.SERIES,
                CacheKey(account.id, f"{site_id}:{metric.value}", date_range.range_id),
                list[ChartPoint],
                fetch,
            )

        def breakdown(dimension: Dimension):
            return self.cache.read_through(
                CacheKind.METRICS,
                CacheKey(account.id, f"{site_id}:{dimension.value}", date_range.range_id),
                list[MetricItem],
                lambda: provider.get_breakdown(site_id, date_range, dimension, self.breakdown_limit),
            )

        queries = {
            "stats": self.cache.read_through(
                CacheKind.STATS, range_key, Stats, lambda: provider.get_stats(site_id, date_range)
            ),
            "active_visitors": self.cache.read_through(
                CacheKind.ACTIVE_VISITORS, CacheKey(account.id, site_id), int,
                lambda: provider.get_active_visitor_count(site_id),
            ),
            "pageviews": series(SeriesMetric.PAGEVIEWS),
            "visitors": series(SeriesMetric.VISITORS),
        }
        for dimension in Dimension:
            if provider.supports(dimension):
                queries[f"breakdown:{dimension.value}"] = breakdown(dimension)

        results, errors = await parallel_queries(**queries)

        detail = WebsiteDetail(site_id=site_id, date_range=date_range)
        for name, result in results.items():
            if result is None:
                continue
            if result.is_offline:
                detail.is_offline = True
                if result.cached_at and (detail.cached_at is None or result.cached_at < detail.cached_at):
                    detail.cached_at = result.cached_at
            if result.data is None:
                continue
            if name.startswith("breakdown:"):
                detail.breakdowns[Dimension(name.split(":", 1)[1])] = result.data
            else:
                setattr(detail, name, result.data)

        for name, error in errors.items():
            detail.errors[name] = str(error)
            if is_session_problem(error):
                detail.needs_reauth = True
        return detail
