"""
Analytics provider adapters.

Usage:
    provider = create_provider(ProviderType.UMAMI, secrets, config)
    websites = await provider.list_websites()
"""
from collections.abc import Callable

import httpx

from ..config import InsightConfig
from ..core.models import ProviderType
from ..secret_store import SecretStore
from .base import AnalyticsProvider
from .plausible import PlausibleProvider
from .umami import UmamiProvider

__all__ = ["AnalyticsProvider", "UmamiProvider", "PlausibleProvider", "create_provider"]


def create_provider(
    provider_type: ProviderType | str,
    secrets: SecretStore,
    config: InsightConfig | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    site_source: Callable[[], list[str] | None] | None = None,
) -> AnalyticsProvider:
    """Build the adapter for a provider tag."""
    provider_type = ProviderType(provider_type)
    if provider_type is ProviderType.UMAMI:
        return UmamiProvider(secrets, config, transport)
    return PlausibleProvider(secrets, config, transport, site_source=site_source)
