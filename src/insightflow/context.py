"""Application context: wires config, secrets, accounts, cache and providers."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import httpx

from .accounts import AccountRegistry
from .cache import AnalyticsCache
from .config import InsightConfig
from .core.dates import DateRange
from .core.models import Account, LoginCredentials, ProviderType
from .errors import NotAuthenticatedError
from .providers import AnalyticsProvider, PlausibleProvider, create_provider
from .secret_store import FileSecretStore, SecretStore
from .services import ComparisonOrchestrator, DashboardAggregator, WebsiteDetail, WebsiteDetailLoader

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Holds all application services. Built once at startup."""

    config: InsightConfig
    secrets: SecretStore
    registry: AccountRegistry
    cache: AnalyticsCache
    dashboard: DashboardAggregator = field(init=False)
    transport: httpx.AsyncBaseTransport | None = None

    def __post_init__(self):
        self.dashboard = DashboardAggregator(self.registry, self.cache, self.provider_for)

    @classmethod
    def create(
        cls,
        config: InsightConfig | None = None,
        secrets: SecretStore | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> AppContext:
        """Factory that wires all dependencies."""
        config = config or InsightConfig()
        secrets = secrets or FileSecretStore(config.secrets_path)
        registry = AccountRegistry(
            secrets,
            config.accounts_path,
            companion_path=config.companion_path,
            switch_delay=config.switch_delay,
        )
        cache = AnalyticsCache(config.cache_dir)
        return cls(config=config, secrets=secrets, registry=registry, cache=cache, transport=transport)

    async def startup(self) -> None:
        """Migrate legacy credentials and make sure the active account's are in place."""
        await self.registry.migrate_from_legacy_credentials()
        self.registry.restore_active_credentials()

    def close(self) -> None:
        self.cache.close()

    # =========================================================================
    # Providers
    # =========================================================================

    def provider_for(self, account: Account) -> AnalyticsProvider:
        return create_provider(
            account.provider_type,
            self.secrets,
            self.config,
            self.transport,
            site_source=self.registry.active_sites,
        )

    def provider(self) -> AnalyticsProvider:
        """Adapter for the active account."""
        account = self.registry.active_account
        if account is None:
            raise NotAuthenticatedError()
        return self.provider_for(account)

    # =========================================================================
    # Accounts
    # =========================================================================

    async def login(
        self,
        provider_type: ProviderType | str,
        server_url: str,
        credentials: LoginCredentials,
        name: str = "",
    ) -> Account:
        """Authenticate, store the account and make it active."""
        provider = create_provider(provider_type, self.secrets, self.config, self.transport)
        account = await provider.authenticate(server_url, credentials)
        if name:
            account = account.model_copy(update={"name": name.strip()})

        existing = next(
            (
                a for a in self.registry.accounts
                if a.server_url == account.server_url and a.provider_type == account.provider_type
            ),
            None,
        )
        if existing is not None and existing.sites and account.sites == []:
            # Re-login keeps the remembered Plausible sites
            account = account.model_copy(update={"sites": existing.sites})

        stored = await self.registry.add_account(account)
        active = self.registry.active_account
        if active is None or active.id != stored.id:
            await self.registry.set_active_account(stored)
        return stored

    async def switch_account(self, account_id: str) -> Account | None:
        account = self.registry.get(account_id)
        if account is None:
            return None
        await self.registry.set_active_account(account)
        return account

    async def remove_account(self, account_id: str) -> Account | None:
        account = self.registry.get(account_id)
        if account is None:
            return None
        await self.registry.remove_account(account)
        removed = self.cache.clear_account(account.id)
        logger.info(f"Cleared {removed} cache entries of {account.display_name}")
        return account

    # =========================================================================
    # Plausible sites
    # =========================================================================

    def _plausible(self) -> tuple[Account, PlausibleProvider]:
        provider = self.provider()
        if not isinstance(provider, PlausibleProvider):
            raise TypeError("Site lists are only kept for Plausible accounts")
        return self.registry.active_account, provider

    async def add_site(self, domain: str) -> list[str]:
        account, provider = self._plausible()
        normalized = await provider.add_site(domain)
        sites = list(account.sites or [])
        if normalized not in sites:
            sites.append(normalized)
        await self.registry.update_account_sites(account, sites)
        return sites

    async def remove_site(self, domain: str) -> list[str]:
        account, _ = self._plausible()
        sites = [site for site in account.sites or [] if site != domain]
        await self.registry.update_account_sites(account, sites)
        return sites

    # =========================================================================
    # Orchestrators
    # =========================================================================

    def comparison(self) -> ComparisonOrchestrator:
        return ComparisonOrchestrator(self.provider())

    async def load_detail(self, site_id: str, date_range: DateRange) -> WebsiteDetail:
        account = self.registry.active_account
        loader = WebsiteDetailLoader(self.provider(), self.cache, self.config.breakdown_limit)
        return await loader.load(account, site_id, date_range)
