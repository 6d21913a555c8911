"""
Provider contract shared by the Umami and Plausible adapters.

Adapters read credentials from the secret store on every request, so an
account switch takes effect without rebuilding the adapter. They never write
provider keys; the account registry owns those.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx

from ..config import InsightConfig
from ..core.dates import DateRange
from ..core.models import (
    Account,
    ChartPoint,
    Dimension,
    LoginCredentials,
    MetricItem,
    ProviderType,
    RealtimeSnapshot,
    SeriesMetric,
    Stats,
    Website,
)
from ..errors import (
    ConnectivityError,
    InvalidResponseError,
    NotAuthenticatedError,
    ServerError,
    UnauthorizedError,
)
from ..secret_store import SecretKey, SecretStore

logger = logging.getLogger(__name__)


class AnalyticsProvider(ABC):
    """One analytics backend behind the canonical model."""

    provider_type: ProviderType

    # Breakdown dimension -> provider-native name; missing means unsupported
    dimension_map: dict[Dimension, str] = {}

    def __init__(
        self,
        secrets: SecretStore,
        config: InsightConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.secrets = secrets
        self.config = config or InsightConfig()
        self._transport = transport

    # =========================================================================
    # Credentials
    # =========================================================================

    @property
    def server_url(self) -> str | None:
        return self.secrets.load(SecretKey.SERVER_URL)

    @property
    def is_authenticated(self) -> bool:
        return self.secrets.load(self.credential_key) is not None

    @property
    @abstractmethod
    def credential_key(self) -> SecretKey:
        """Secret store key holding this provider's credential."""

    def _credentials(self) -> tuple[str, str]:
        """(server_url, secret) for the active account."""
        server_url = self.server_url
        secret = self.secrets.load(self.credential_key)
        if not server_url or not secret:
            raise NotAuthenticatedError()
        return server_url, secret

    # =========================================================================
    # HTTP plumbing
    # =========================================================================

    async def _send(
        self,
        method: str,
        url: str,
        *,
        timeout: float | None = None,
        headers: dict[str, str] | None = None,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> httpx.Response:
        """Issue one request, mapping transport failures to ConnectivityError."""
        timeout = timeout or self.config.request_timeout
        async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
            try:
                return await client.request(method, url, headers=headers, params=params, json=json)
            except httpx.TimeoutException as e:
                raise ConnectivityError(f"Request to {url} timed out") from e
            except httpx.TransportError as e:
                raise ConnectivityError(f"Could not reach {url}: {e}") from e

    def _check_status(self, response: httpx.Response) -> None:
        if response.status_code == 401:
            raise UnauthorizedError()
        if not response.is_success:
            raise ServerError(response.status_code)

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise InvalidResponseError(f"Invalid JSON from {response.request.url}") from e

    # =========================================================================
    # Contract
    # =========================================================================

    @abstractmethod
    async def authenticate(self, server_url: str, credentials: LoginCredentials) -> Account:
        """Validate credentials against the server and describe the account.

        Does not persist anything.
        """

    @abstractmethod
    async def list_websites(self) -> list[Website]:
        ...

    @abstractmethod
    async def get_stats(self, site_id: str, date_range: DateRange) -> Stats:
        ...

    @abstractmethod
    async def get_time_series(
        self, site_id: str, date_range: DateRange, metric: SeriesMetric
    ) -> list[ChartPoint]:
        """Raw series points, before gap filling."""

    @abstractmethod
    async def get_active_visitor_count(self, site_id: str) -> int:
        ...

    @abstractmethod
    async def get_realtime(self, site_id: str) -> RealtimeSnapshot:
        ...

    async def get_breakdown(
        self,
        site_id: str,
        date_range: DateRange,
        dimension: Dimension,
        limit: int = 10,
    ) -> list[MetricItem]:
        """Top items for one dimension; [] without a request if unsupported."""
        native = self.dimension_map.get(Dimension(dimension))
        if native is None:
            logger.debug(f"{self.provider_type.value} has no '{dimension}' breakdown")
            return []
        return await self._fetch_breakdown(site_id, date_range, native, limit)

    @abstractmethod
    async def _fetch_breakdown(
        self, site_id: str, date_range: DateRange, native_dimension: str, limit: int
    ) -> list[MetricItem]:
        ...

    def supports(self, dimension: Dimension) -> bool:
        return Dimension(dimension) in self.dimension_map
