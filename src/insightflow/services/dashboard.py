"""
Dashboard aggregation: every site of the active account, each with stats,
active visitors and a pageview sparkline.
"""
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from ..accounts import AccountRegistry
from ..cache import AnalyticsCache, CachedResult, CachedValue, CacheKey, CacheKind
from ..core.dates import DateRange
from ..core.models import Account, ChartPoint, SeriesMetric, Stats, Website
from ..core.normalize import gap_fill
from ..errors import NotAuthenticatedError, is_session_problem
from ..providers import AnalyticsProvider
from .parallel import parallel_queries

logger = logging.getLogger(__name__)

# (kind, site id or None for the website list, cached value)
CachedCallback = Callable[[CacheKind, str | None, CachedValue], Awaitable[None] | None]


class DashboardState(BaseModel):
    """Everything the dashboard shows, keyed by site id."""
    account_id: str
    date_range: DateRange
    websites: list[Website] = []
    stats: dict[str, Stats] = {}
    active_visitors: dict[str, int] = {}
    sparklines: dict[str, list[ChartPoint]] = {}
    errors: dict[str, dict[str, str]] = {}
    is_offline: bool = False
    needs_reauth: bool = False
    # Oldest cache timestamp served while offline
    offline_since: datetime | None = None
    # Set when a newer refresh or account switch started before this one finished
    superseded: bool = False
    refreshed_at: datetime = Field(default_factory=datetime.now)


class DashboardAggregator:
    """Loads the dashboard for the active account."""

    def __init__(
        self,
        registry: AccountRegistry,
        cache: AnalyticsCache,
        provider_for: Callable[[Account], AnalyticsProvider],
    ):
        self.registry = registry
        self.cache = cache
        self.provider_for = provider_for
        self.state: DashboardState | None = None
        self._generation = 0

    async def refresh(
        self,
        date_range: DateRange,
        websites: list[Website] | None = None,
        on_cached: CachedCallback | None = None,
    ) -> DashboardState:
        account = self.registry.active_account
        if account is None:
            raise NotAuthenticatedError()

        self._generation += 1
        generation = self._generation
        account_generation = self.registry.generation
        provider = self.provider_for(account)
        state = DashboardState(account_id=account.id, date_range=date_range)

        if websites is None:
            listing = await self.cache.read_through(
                CacheKind.WEBSITES,
                CacheKey(account.id),
                list[Website],
                provider.list_websites,
                on_cached=self._forward(on_cached, CacheKind.WEBSITES, None),
            )
            self._note_result(state, listing)
            websites = listing.data or []
        state.websites = list(websites)

        site_queries = {
            site.id: self._load_site(provider, account, site, date_range, state, on_cached)
            for site in websites
        }
        await parallel_queries(**site_queries)

        if generation != self._generation or account_generation != self.registry.generation:
            logger.debug(f"Dropping superseded dashboard refresh for {account.display_name}")
            state.superseded = True
            return state

        self.state = state
        return state

    async def _load_site(
        self,
        provider: AnalyticsProvider,
        account: Account,
        site: Website,
        date_range: DateRange,
        state: DashboardState,
        on_cached: CachedCallback | None,
    ) -> None:
        key = CacheKey(account.id, site.id, date_range.range_id)

        async def fetch_sparkline() -> list[ChartPoint]:
            points = await provider.get_time_series(site.id, date_range, SeriesMetric.PAGEVIEWS)
            return gap_fill(points, date_range)

        results, errors = await parallel_queries(
            stats=self.cache.read_through(
                CacheKind.STATS, key, Stats,
                lambda: provider.get_stats(site.id, date_range),
                on_cached=self._forward(on_cached, CacheKind.STATS, site.id),
            ),
            active_visitors=self.cache.read_through(
                CacheKind.ACTIVE_VISITORS, CacheKey(account.id, site.id), int,
                lambda: provider.get_active_visitor_count(site.id),
                on_cached=self._forward(on_cached, CacheKind.ACTIVE_VISITORS, site.id),
            ),
            sparkline=self.cache.read_through(
                CacheKind.SPARKLINE, key, list[ChartPoint],
                fetch_sparkline,
                on_cached=self._forward(on_cached, CacheKind.SPARKLINE, site.id),
            ),
        )

        targets = {
            "stats": state.stats,
            "active_visitors": state.active_visitors,
            "sparkline": state.sparklines,
        }
        for name, result in results.items():
            if result is None:
                continue
            self._note_result(state, result)
            if result.data is not None:
                targets[name][site.id] = result.data

        for name, error in errors.items():
            state.errors.setdefault(site.id, {})[name] = str(error)
            if is_session_problem(error):
                state.needs_reauth = True

    @staticmethod
    def _note_result(state: DashboardState, result: CachedResult) -> None:
        if not result.is_offline:
            return
        state.is_offline = True
        if result.cached_at and (state.offline_since is None or result.cached_at < state.offline_since):
            state.offline_since = result.cached_at

    @staticmethod
    def _forward(
        on_cached: CachedCallback | None, kind: CacheKind, site_id: str | None
    ) -> Callable[[CachedValue], Any] | None:
        if on_cached is None:
            return None
        return lambda value: on_cached(kind, site_id, value)
