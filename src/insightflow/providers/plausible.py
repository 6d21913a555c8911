"""
Plausible adapter: static API key against the v2 query endpoint.

Plausible has no site listing for API keys, so the sites shown are the ones
the user added to the active account.
"""
import asyncio
import logging
from collections.abc import Callable
from datetime import date
from typing import Any
from urllib.parse import quote

import httpx

from ..config import InsightConfig
from ..core.dates import DateRange, DateRangePreset, TimeUnit
from ..core.models import (
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
    Stats,
    Website,
    round_half_up,
)
from ..core.normalize import normalize_domain, normalize_server_url, parse_timestamp
from ..errors import ApiError, InvalidCredentialsError, InvalidResponseError, ServerError, UnauthorizedError
from ..secret_store import SecretKey, SecretStore
from .base import AnalyticsProvider

logger = logging.getLogger(__name__)

QUERY_ENDPOINT = "api/v2/query"
STATS_METRICS = ["visitors", "pageviews", "visits", "bounce_rate", "visit_duration"]

# Presets with a native date_range shortcut
DATE_RANGE_SHORTCUTS = {
    DateRangePreset.TODAY: "day",
    DateRangePreset.LAST_7_DAYS: "7d",
    DateRangePreset.LAST_30_DAYS: "30d",
    DateRangePreset.THIS_MONTH: "month",
    DateRangePreset.THIS_YEAR: "year",
}

TIME_DIMENSIONS = {
    TimeUnit.HOUR: "time:hour",
    TimeUnit.DAY: "time:day",
    TimeUnit.MONTH: "time:month",
}


def _explicit_range(start: date, end: date) -> list[str]:
    return [start.isoformat(), end.isoformat()]


def plausible_date_range(date_range: DateRange) -> str | list[str]:
    """Shortcut string where Plausible has one, else [start_date, end_date]."""
    shortcut = DATE_RANGE_SHORTCUTS.get(date_range.preset)
    if shortcut:
        return shortcut
    start, end = date_range.resolve()
    return _explicit_range(start.date(), end.date())


def _metric(values: list, index: int) -> float:
    if index < len(values) and values[index] is not None:
        return float(values[index])
    return 0.0


def _totals_from_result(results: list[dict]) -> MetricTotals:
    """Convert a stats row to canonical totals.

    Plausible reports bounce_rate as a percentage and visit_duration as the
    per-visit average; canonical totals carry counts and summed seconds.
    """
    if not results:
        return MetricTotals()
    values = results[0].get("metrics") or []
    visits = int(_metric(values, 2))
    return MetricTotals(
        visitors=int(_metric(values, 0)),
        pageviews=int(_metric(values, 1)),
        visits=visits,
        bounces=round_half_up(_metric(values, 3) * visits / 100),
        totaltime=int(_metric(values, 4)) * visits,
    )


class PlausibleProvider(AnalyticsProvider):
    """Client for plausible.io or a Plausible CE instance."""

    provider_type = ProviderType.PLAUSIBLE

    dimension_map = {
        Dimension.PAGE: "event:page",
        Dimension.REFERRER: "visit:source",
        Dimension.COUNTRY: "visit:country",
        Dimension.REGION: "visit:region",
        Dimension.CITY: "visit:city",
        Dimension.DEVICE: "visit:device",
        Dimension.BROWSER: "visit:browser",
        Dimension.OS: "visit:os",
        Dimension.EVENT: "event:name",
        Dimension.ENTRY_PAGE: "visit:entry_page",
        Dimension.EXIT_PAGE: "visit:exit_page",
    }

    def __init__(
        self,
        secrets: SecretStore,
        config: InsightConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        site_source: Callable[[], list[str] | None] | None = None,
    ):
        super().__init__(secrets, config, transport)
        self._site_source = site_source

    @property
    def credential_key(self) -> SecretKey:
        return SecretKey.API_KEY

    # =========================================================================
    # REQUESTS
    # =========================================================================

    def _check_status(self, response: httpx.Response, accepted: tuple[int, ...] = (200,)) -> None:
        if response.status_code in accepted:
            return
        if response.status_code == 401:
            raise UnauthorizedError()
        try:
            envelope = response.json()
        except ValueError:
            envelope = None
        if isinstance(envelope, dict) and envelope.get("error"):
            raise ApiError(str(envelope["error"]), status_code=response.status_code)
        raise ServerError(response.status_code)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        body: Any = None,
        timeout: float | None = None,
        accepted: tuple[int, ...] = (200,),
    ) -> httpx.Response:
        server_url, api_key = self._credentials()
        response = await self._send(
            method,
            f"{server_url}/{path}",
            timeout=timeout,
            headers={"Authorization": f"Bearer {api_key}"},
            params=params,
            json=body,
        )
        self._check_status(response, accepted)
        return response

    async def _query(self, body: dict[str, Any]) -> list[dict]:
        """Run one v2 query and return its result rows."""
        response = await self._request("POST", QUERY_ENDPOINT, body=body)
        data = self._decode(response)
        if not isinstance(data, dict) or not isinstance(data.get("results"), list):
            raise InvalidResponseError("Query response has no results list")
        return data["results"]

    # =========================================================================
    # AUTH
    # =========================================================================

    async def authenticate(self, server_url: str, credentials: LoginCredentials) -> Account:
        if not server_url.strip() or not credentials.api_key:
            raise InvalidCredentialsError("Server URL and API key are required")

        url = normalize_server_url(server_url)
        # An empty query is rejected with 400 for a valid key and 401 otherwise
        response = await self._send(
            "POST",
            f"{url}/{QUERY_ENDPOINT}",
            timeout=self.config.auth_timeout,
            headers={"Authorization": f"Bearer {credentials.api_key}"},
            json={},
        )
        if response.status_code not in (200, 400):
            if response.status_code == 401:
                raise UnauthorizedError()
            raise ServerError(response.status_code)

        logger.info(f"Authenticated against Plausible at {url}")
        return Account(
            server_url=url,
            provider_type=ProviderType.PLAUSIBLE,
            credentials=AccountCredentials(api_key=credentials.api_key),
            sites=[],
        )

    # =========================================================================
    # SITES
    # =========================================================================

    async def list_websites(self) -> list[Website]:
        sites = (self._site_source() if self._site_source else None) or []
        return [
            Website(id=domain, name=domain, domain=domain, provider=ProviderType.PLAUSIBLE)
            for domain in sites
        ]

    async def add_site(self, domain: str) -> str:
        """Validate a site with a 7-day query and return its normalized domain.

        Remembering the site is left to the caller (the account registry).
        """
        normalized = normalize_domain(domain)
        if not normalized:
            raise InvalidCredentialsError("Site domain is empty")
        await self._query({"site_id": normalized, "metrics": ["visitors"], "date_range": "7d"})
        return normalized

    async def create_site(self, domain: str, timezone: str = "Europe/Berlin") -> dict:
        response = await self._request(
            "POST", "api/v1/sites", body={"domain": domain, "timezone": timezone}, accepted=(200, 201)
        )
        return self._decode(response)

    async def delete_site(self, domain: str) -> None:
        await self._request("DELETE", f"api/v1/sites/{quote(domain)}", accepted=(200, 204))

    async def create_or_get_shared_link(self, domain: str, name: str = "Public Dashboard") -> dict:
        response = await self._request(
            "PUT", f"api/v1/sites/{quote(domain)}/shared-links", body={"name": name}, accepted=(200, 201)
        )
        return self._decode(response)

    def tracking_snippet(self, domain: str) -> str:
        return f'<script defer data-domain="{domain}" src="{self.server_url}/js/script.js"></script>'

    # =========================================================================
    # STATS
    # =========================================================================

    async def get_stats(self, site_id: str, date_range: DateRange) -> Stats:
        current = await self._query({
            "site_id": site_id,
            "metrics": STATS_METRICS,
            "date_range": plausible_date_range(date_range),
        })
        previous_start, previous_end = date_range.previous_period()
        previous = await self._query({
            "site_id": site_id,
            "metrics": STATS_METRICS,
            "date_range": _explicit_range(previous_start.date(), previous_end.date()),
        })
        return Stats.from_totals(_totals_from_result(current), _totals_from_result(previous))

    async def get_time_series(
        self, site_id: str, date_range: DateRange, metric: SeriesMetric
    ) -> list[ChartPoint]:
        results = await self._query({
            "site_id": site_id,
            "metrics": [SeriesMetric(metric).value],
            "date_range": plausible_date_range(date_range),
            "dimensions": [TIME_DIMENSIONS[date_range.unit()]],
        })

        points = []
        for row in results:
            dimensions = row.get("dimensions") or []
            if not dimensions:
                continue
            try:
                timestamp = parse_timestamp(str(dimensions[0]))
            except ValueError:
                logger.debug(f"Skipping series row with unparseable time {dimensions[0]!r}")
                continue
            points.append(ChartPoint(timestamp=timestamp, value=int(_metric(row.get("metrics") or [], 0))))
        return points

    async def _fetch_breakdown(
        self, site_id: str, date_range: DateRange, native_dimension: str, limit: int
    ) -> list[MetricItem]:
        results = await self._query({
            "site_id": site_id,
            "metrics": ["visitors"],
            "date_range": plausible_date_range(date_range),
            "dimensions": [native_dimension],
            "limit": limit,
        })
        return [
            MetricItem(
                name=str((row.get("dimensions") or [""])[0]),
                value=int(_metric(row.get("metrics") or [], 0)),
            )
            for row in results
        ]

    # =========================================================================
    # REALTIME
    # =========================================================================

    async def get_active_visitor_count(self, site_id: str) -> int:
        response = await self._request(
            "GET",
            "api/v1/stats/realtime/visitors",
            params={"site_id": site_id},
            timeout=self.config.realtime_timeout,
        )
        try:
            return int(response.text.strip())
        except ValueError:
            return 0

    async def get_realtime_top_pages(self, site_id: str, limit: int = 10) -> list[MetricItem]:
        """Today's busiest pages by visitors."""
        today = DateRange.from_preset(DateRangePreset.TODAY)
        return await self._fetch_breakdown(site_id, today, "event:page", limit)

    async def get_realtime_countries(self, site_id: str, limit: int = 10) -> list[MetricItem]:
        today = DateRange.from_preset(DateRangePreset.TODAY)
        return await self._fetch_breakdown(site_id, today, "visit:country", limit)

    async def get_realtime(self, site_id: str) -> RealtimeSnapshot:
        """Live count plus today's top pages and countries; no event stream."""
        active, top_pages, countries = await asyncio.gather(
            self.get_active_visitor_count(site_id),
            self.get_realtime_top_pages(site_id),
            self.get_realtime_countries(site_id),
        )
        return RealtimeSnapshot(active_visitors=active, top_pages=top_pages, countries=countries)
