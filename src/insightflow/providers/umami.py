"""
Umami adapter: bearer token obtained through username/password login.
"""
import logging
from datetime import datetime
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from ..core.dates import DateRange
from ..core.models import (
    Account,
    AccountCredentials,
    ChartPoint,
    Dimension,
    LoginCredentials,
    MetricItem,
    MetricTotals,
    ProviderType,
    RealtimeEvent,
    RealtimePageview,
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
    sort_by_value,
)
from ..core.normalize import normalize_server_url, parse_timestamp
from ..errors import InvalidCredentialsError, InvalidResponseError
from ..secret_store import SecretKey
from .base import AnalyticsProvider

logger = logging.getLogger(__name__)

STAT_FIELDS = ("visitors", "pageviews", "visits", "bounces", "totaltime")

ModelT = TypeVar("ModelT", bound=BaseModel)


def _epoch_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)


def _as_int(value: Any) -> int:
    if value is None:
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidResponseError(f"Expected a number, got {value!r}") from None


def _as_object(data: Any, what: str) -> dict:
    """Decoded body as a dict; an empty body reads as {}."""
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidResponseError(f"{what} response is not an object")
    return data


def _validate_rows(model: type[ModelT], rows: Any, what: str) -> list[ModelT]:
    if not isinstance(rows, list):
        raise InvalidResponseError(f"{what} response is not a list")
    try:
        return [
            model.model_validate({key: value for key, value in row.items() if value is not None})
            for row in rows
        ]
    except (AttributeError, ValidationError) as e:
        raise InvalidResponseError(f"Malformed {what.lower()} entry: {e}") from e


def _ranked(counts: Any) -> list[MetricItem]:
    """{name: count} map as items, busiest first."""
    if not isinstance(counts, dict):
        return []
    return sort_by_value([MetricItem(name=str(name), value=_as_int(value)) for name, value in counts.items()])


def _parse_optional_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return parse_timestamp(value)
    except ValueError:
        logger.debug(f"Ignoring unparseable timestamp '{value}'")
        return None


class UmamiProvider(AnalyticsProvider):
    """Client for a self-hosted or cloud Umami instance."""

    provider_type = ProviderType.UMAMI

    dimension_map = {
        Dimension.PAGE: "path",
        Dimension.REFERRER: "referrer",
        Dimension.COUNTRY: "country",
        Dimension.REGION: "region",
        Dimension.CITY: "city",
        Dimension.DEVICE: "device",
        Dimension.BROWSER: "browser",
        Dimension.OS: "os",
        Dimension.LANGUAGE: "language",
        Dimension.SCREEN: "screen",
        Dimension.EVENT: "event",
        Dimension.TITLE: "title",
        Dimension.HOSTNAME: "hostname",
    }

    @property
    def credential_key(self) -> SecretKey:
        return SecretKey.TOKEN

    # =========================================================================
    # REQUESTS
    # =========================================================================

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        body: Any = None,
        timeout: float | None = None,
    ) -> Any:
        server_url, token = self._credentials()
        response = await self._send(
            method,
            f"{server_url}/{path}",
            timeout=timeout,
            headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
            params=params,
            json=body,
        )
        self._check_status(response)
        if not response.content:
            return None
        return self._decode(response)

    def _window(self, start: datetime, end: datetime) -> dict[str, Any]:
        return {"startAt": _epoch_ms(start), "endAt": _epoch_ms(end)}

    # =========================================================================
    # AUTH
    # =========================================================================

    async def authenticate(self, server_url: str, credentials: LoginCredentials) -> Account:
        if not server_url.strip() or not credentials.username or not credentials.password:
            raise InvalidCredentialsError("Server URL, username and password are required")

        url = normalize_server_url(server_url)
        response = await self._send(
            "POST",
            f"{url}/api/auth/login",
            timeout=self.config.auth_timeout,
            json={"username": credentials.username, "password": credentials.password},
        )
        self._check_status(response)

        token = (self._decode(response) or {}).get("token")
        if not token:
            raise InvalidResponseError("Login response carried no token")

        logger.info(f"Authenticated against Umami at {url}")
        return Account(
            server_url=url,
            provider_type=ProviderType.UMAMI,
            credentials=AccountCredentials(token=token),
        )

    # =========================================================================
    # WEBSITES
    # =========================================================================

    async def list_websites(self) -> list[Website]:
        data = await self._request("GET", "api/websites")
        rows = data.get("data", []) if isinstance(data, dict) else (data or [])
        return [self._website(row) for row in rows]

    def _website(self, row: dict) -> Website:
        try:
            return Website(
                id=row["id"],
                name=row.get("name") or "",
                domain=row.get("domain") or row.get("name"),
                share_id=row.get("shareId"),
                team_id=row.get("teamId"),
                reset_at=_parse_optional_timestamp(row.get("resetAt")),
                created_at=_parse_optional_timestamp(row.get("createdAt")),
                provider=ProviderType.UMAMI,
            )
        except (KeyError, TypeError) as e:
            raise InvalidResponseError(f"Malformed website entry: {e}") from e

    async def create_website(self, name: str, domain: str, team_id: str | None = None) -> Website:
        body = {"name": name, "domain": domain}
        if team_id:
            body["teamId"] = team_id
        return self._website(await self._request("POST", "api/websites", body=body))

    async def update_website(
        self,
        site_id: str,
        name: str | None = None,
        domain: str | None = None,
        share_id: str | None = None,
        clear_share_id: bool = False,
    ) -> Website:
        """Update a website; clear_share_id sends null to disable sharing."""
        body: dict[str, Any] = {}
        if name is not None:
            body["name"] = name
        if domain is not None:
            body["domain"] = domain
        if clear_share_id:
            body["shareId"] = None
        elif share_id is not None:
            body["shareId"] = share_id
        return self._website(await self._request("POST", f"api/websites/{site_id}", body=body))

    async def delete_website(self, site_id: str) -> None:
        await self._request("DELETE", f"api/websites/{site_id}")

    async def reset_website(self, site_id: str) -> None:
        await self._request("POST", f"api/websites/{site_id}/reset", body={})

    # =========================================================================
    # STATS
    # =========================================================================

    async def get_stats(self, site_id: str, date_range: DateRange) -> Stats:
        start, end = date_range.resolve()
        data = await self._request("GET", f"api/websites/{site_id}/stats", params=self._window(start, end))
        if not isinstance(data, dict):
            raise InvalidResponseError("Stats response is not an object")

        # Current servers: flat totals plus a "comparison" block
        if isinstance(data.get("comparison"), dict):
            return Stats.from_totals(self._totals(data), self._totals(data["comparison"]))

        # Older servers: {"pageviews": {"value": 10, "prev": 8}, ...}
        if any(isinstance(data.get(name), dict) for name in STAT_FIELDS):
            fields = {}
            for name in STAT_FIELDS:
                entry = data.get(name) or {}
                value = _as_int(entry.get("value"))
                fields[name] = StatValue(value=value, change=value - _as_int(entry.get("prev")))
            return Stats(**fields)

        # Plain totals: ask again for the preceding window
        previous_start, previous_end = date_range.previous_period()
        previous = await self._request(
            "GET",
            f"api/websites/{site_id}/stats",
            params=self._window(previous_start, previous_end),
        )
        return Stats.from_totals(self._totals(data), self._totals(_as_object(previous, "Stats")))

    @staticmethod
    def _totals(data: dict) -> MetricTotals:
        return MetricTotals(**{name: _as_int(data.get(name)) for name in STAT_FIELDS})

    async def get_time_series(
        self, site_id: str, date_range: DateRange, metric: SeriesMetric
    ) -> list[ChartPoint]:
        start, end = date_range.resolve()
        params = self._window(start, end)
        params["unit"] = date_range.unit().value
        data = await self._request("GET", f"api/websites/{site_id}/pageviews", params=params)

        series_key = "pageviews" if SeriesMetric(metric) is SeriesMetric.PAGEVIEWS else "sessions"
        points = []
        for row in _as_object(data, "Series").get(series_key, []):
            try:
                points.append(ChartPoint(timestamp=parse_timestamp(row["x"]), value=_as_int(row.get("y"))))
            except (KeyError, TypeError, ValueError) as e:
                raise InvalidResponseError(f"Malformed series point {row!r}") from e
        return points

    async def get_active_visitor_count(self, site_id: str) -> int:
        data = await self._request(
            "GET", f"api/websites/{site_id}/active", timeout=self.config.realtime_timeout
        )
        if isinstance(data, dict):
            return _as_int(data.get("visitors", data.get("x")))
        if isinstance(data, list) and data:
            return _as_int(data[0].get("x"))
        return 0

    async def _fetch_breakdown(
        self, site_id: str, date_range: DateRange, native_dimension: str, limit: int
    ) -> list[MetricItem]:
        start, end = date_range.resolve()
        params = self._window(start, end)
        params.update({"type": native_dimension, "unit": date_range.unit().value, "limit": limit})
        data = await self._request("GET", f"api/websites/{site_id}/metrics", params=params)
        return [
            MetricItem(name="" if row.get("x") is None else str(row["x"]), value=_as_int(row.get("y")))
            for row in data or []
        ]

    # =========================================================================
    # REALTIME & SESSIONS
    # =========================================================================

    async def get_realtime(self, site_id: str) -> RealtimeSnapshot:
        data = await self._request("GET", f"api/realtime/{site_id}", timeout=self.config.realtime_timeout)
        data = _as_object(data, "Realtime")

        pageviews, events = [], []
        for event in data.get("events", []):
            kind = event.get("__type")
            timestamp = _parse_optional_timestamp(event.get("createdAt"))
            if kind == "pageview":
                pageviews.append(RealtimePageview(
                    url=event.get("urlPath") or "",
                    referrer=event.get("referrerDomain"),
                    timestamp=timestamp,
                    country=event.get("country"),
                ))
            elif kind != "session":
                events.append(RealtimeEvent(
                    name=event.get("eventName") or "",
                    url=event.get("urlPath") or "",
                    timestamp=timestamp,
                ))

        totals = data.get("totals") or {}
        return RealtimeSnapshot(
            active_visitors=_as_int(totals.get("visitors")),
            pageviews=pageviews,
            events=events,
            top_pages=_ranked(data.get("urls")),
            countries=_ranked(data.get("countries")),
        )

    async def get_sessions(
        self, site_id: str, date_range: DateRange, page: int = 1, page_size: int = 20
    ) -> list[SessionSummary]:
        start, end = date_range.resolve()
        params = self._window(start, end)
        params.update({"page": page, "pageSize": page_size})
        data = await self._request("GET", f"api/websites/{site_id}/sessions", params=params)
        return _validate_rows(SessionSummary, _as_object(data, "Sessions").get("data", []), "Sessions")

    async def get_session_activity(
        self, site_id: str, session_id: str, date_range: DateRange
    ) -> list[SessionActivity]:
        """Pageviews and events of one session, in server order."""
        start, end = date_range.resolve()
        data = await self._request(
            "GET",
            f"api/websites/{site_id}/sessions/{session_id}/activity",
            params=self._window(start, end),
        )
        return _validate_rows(SessionActivity, data or [], "Session activity")

    # =========================================================================
    # TEAMS & USERS
    # =========================================================================

    async def get_teams(self) -> list[Team]:
        data = _as_object(await self._request("GET", "api/admin/teams"), "Teams")
        return _validate_rows(Team, data.get("data", []), "Teams")

    async def create_team(self, name: str) -> Team:
        data = await self._request("POST", "api/teams", body={"name": name})
        # Newer servers answer [team, membership]
        if isinstance(data, list):
            data = data[0] if data else None
        if not isinstance(data, dict):
            raise InvalidResponseError("Create team response carried no team")
        team = _validate_rows(Team, [data], "Create team")[0]
        logger.info(f"Created team '{team.name}'")
        return team

    async def delete_team(self, team_id: str) -> None:
        await self._request("DELETE", f"api/teams/{team_id}")

    async def get_team_members(self, team_id: str) -> list[TeamMember]:
        data = _as_object(await self._request("GET", f"api/teams/{team_id}/users"), "Team members")
        return _validate_rows(TeamMember, data.get("data", []), "Team members")

    async def add_team_member(self, team_id: str, user_id: str, role: str = "team-member") -> None:
        await self._request("POST", f"api/teams/{team_id}/users", body={"userId": user_id, "role": role})

    async def remove_team_member(self, team_id: str, user_id: str) -> None:
        await self._request("DELETE", f"api/teams/{team_id}/users/{user_id}")

    async def get_users(self) -> list[UmamiUser]:
        data = _as_object(await self._request("GET", "api/admin/users"), "Users")
        return _validate_rows(UmamiUser, data.get("data", []), "Users")

    async def create_user(self, username: str, password: str, role: str = "user") -> UmamiUser:
        data = await self._request(
            "POST", "api/users", body={"username": username, "password": password, "role": role}
        )
        user = _validate_rows(UmamiUser, [_as_object(data, "Create user")], "Create user")[0]
        logger.info(f"Created user '{user.username}' with role {user.role}")
        return user

    async def delete_user(self, user_id: str) -> None:
        await self._request("DELETE", f"api/users/{user_id}")
