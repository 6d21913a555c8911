"""
Side-by-side comparison of one site over two arbitrary date ranges.
"""
import asyncio
import logging
from collections.abc import Iterable

from pydantic import BaseModel

from ..core.dates import DateRange
from ..core.models import ChartPoint, SeriesMetric, Stats
from ..core.normalize import gap_fill
from ..providers import AnalyticsProvider

logger = logging.getLogger(__name__)

DEFAULT_METRICS = (SeriesMetric.PAGEVIEWS, SeriesMetric.VISITORS)


class ComparisonSide(BaseModel):
    date_range: DateRange
    stats: Stats
    series: dict[SeriesMetric, list[ChartPoint]]


class ComparisonResult(BaseModel):
    """Both periods. Series lengths follow each range's own buckets and may differ."""
    site_id: str
    a: ComparisonSide
    b: ComparisonSide


class ComparisonOrchestrator:
    def __init__(self, provider: AnalyticsProvider):
        self.provider = provider

    async def compare(
        self,
        site_id: str,
        range_a: DateRange,
        range_b: DateRange,
        metrics: Iterable[SeriesMetric] = DEFAULT_METRICS,
    ) -> ComparisonResult:
        metrics = [SeriesMetric(metric) for metric in metrics]
        logger.debug(f"Comparing {site_id}: {range_a.range_id} vs {range_b.range_id}")

        side_a, side_b = await asyncio.gather(
            self._side(site_id, range_a, metrics),
            self._side(site_id, range_b, metrics),
        )
        return ComparisonResult(site_id=site_id, a=side_a, b=side_b)

    async def _side(self, site_id: str, date_range: DateRange, metrics: list[SeriesMetric]) -> ComparisonSide:
        stats, *series = await asyncio.gather(
            self.provider.get_stats(site_id, date_range),
            *(self.provider.get_time_series(site_id, date_range, metric) for metric in metrics),
        )
        return ComparisonSide(
            date_range=date_range,
            stats=stats,
            series={metric: gap_fill(points, date_range) for metric, points in zip(metrics, series)},
        )
