"""
Account registry: the list of configured analytics accounts and which one
is active.

The registry is the only writer of provider credentials in the secret
store. Switching accounts writes the credentials first, then (after a short
settling delay) notifies subscribers, so a subscriber that reacts by
fetching data always sees the new account's credentials.
"""
import asyncio
import inspect
import json
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from .core.models import Account, AccountCredentials, ProviderType
from .secret_store import SecretKey, SecretStore, delete_all

logger = logging.getLogger(__name__)

AccountCallback = Callable[[Account | None], Awaitable[None] | None]

_accounts_adapter = TypeAdapter(list[Account])


class AccountEvent(str, Enum):
    ACCOUNT_CHANGED = "account_changed"
    ALL_ACCOUNTS_REMOVED = "all_accounts_removed"


class AccountRegistry:
    """Persistent account list with a single active account."""

    def __init__(
        self,
        secrets: SecretStore,
        accounts_path: Path,
        companion_path: Path | None = None,
        switch_delay: float = 0.3,
    ):
        self.secrets = secrets
        self.accounts_path = Path(accounts_path)
        self.companion_path = Path(companion_path) if companion_path else None
        self.switch_delay = switch_delay

        self._accounts: list[Account] = []
        self._active_id: str | None = None
        self._generation = 0
        self._subscribers: dict[AccountEvent, list[AccountCallback]] = {event: [] for event in AccountEvent}

        self._load()

    # =========================================================================
    # Queries
    # =========================================================================

    @property
    def accounts(self) -> list[Account]:
        return list(self._accounts)

    @property
    def active_account(self) -> Account | None:
        return self.get(self._active_id) if self._active_id else None

    @property
    def generation(self) -> int:
        """Bumped on every active-account switch."""
        return self._generation

    @property
    def has_multiple_accounts(self) -> bool:
        return len(self._accounts) > 1

    def get(self, account_id: str) -> Account | None:
        return next((account for account in self._accounts if account.id == account_id), None)

    def active_sites(self) -> list[str]:
        """Sites remembered for the active account (Plausible)."""
        account = self.active_account
        return list(account.sites or []) if account else []

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def subscribe(self, event: AccountEvent, callback: AccountCallback) -> Callable[[], None]:
        """Register a callback; returns a function that unsubscribes it."""
        callbacks = self._subscribers[AccountEvent(event)]
        callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe

    async def _broadcast(self, event: AccountEvent, account: Account | None) -> None:
        for callback in list(self._subscribers[event]):
            try:
                result = callback(account)
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Subscriber for '{event.value}' failed: {e}")

    # =========================================================================
    # Mutations
    # =========================================================================

    async def add_account(self, account: Account) -> Account:
        """Insert, or replace the account with the same server and provider.

        A replaced account keeps its id. The first account added becomes
        active.
        """
        index = next(
            (
                i for i, existing in enumerate(self._accounts)
                if existing.server_url == account.server_url
                and existing.provider_type == account.provider_type
            ),
            None,
        )
        if index is None:
            self._accounts.append(account)
            stored = account
        else:
            stored = account.model_copy(update={"id": self._accounts[index].id})
            self._accounts[index] = stored
        self._save()
        logger.info(f"Stored account {stored.display_name} ({stored.provider_type.value})")

        if self.active_account is None:
            await self.set_active_account(stored)
        elif self._active_id == stored.id:
            # Credentials of the active account may have changed
            self._apply_credentials(stored)
            self._write_companion()
        else:
            self._write_companion()
        return stored

    async def remove_account(self, account: Account) -> None:
        was_active = self._active_id == account.id
        self._accounts = [existing for existing in self._accounts if existing.id != account.id]
        self._save()
        logger.info(f"Removed account {account.display_name}")

        if not was_active:
            self._write_companion()
            return
        if self._accounts:
            await self.set_active_account(self._accounts[0])
        else:
            await self.clear_active_account()

    async def set_active_account(self, account: Account) -> None:
        stored = self.get(account.id) or account
        self._active_id = stored.id
        self._save()
        self._apply_credentials(stored)
        self._write_companion()
        self._generation += 1

        if self.switch_delay > 0:
            await asyncio.sleep(self.switch_delay)
        # A later switch superseded this one while we waited
        if self._active_id != stored.id:
            return
        await self._broadcast(AccountEvent.ACCOUNT_CHANGED, stored)

    async def clear_active_account(self) -> None:
        self._active_id = None
        self._save()
        delete_all(self.secrets)
        self._write_companion()
        self._generation += 1
        logger.info("No accounts left, credentials cleared")
        await self._broadcast(AccountEvent.ALL_ACCOUNTS_REMOVED, None)

    async def update_account_sites(self, account: Account, sites: list[str]) -> Account | None:
        return await self._update(account, sites=list(sites))

    async def rename_account(self, account: Account, name: str) -> Account | None:
        return await self._update(account, name=name.strip())

    async def _update(self, account: Account, **changes) -> Account | None:
        index = next((i for i, existing in enumerate(self._accounts) if existing.id == account.id), None)
        if index is None:
            logger.warning(f"Account {account.id} not found, update ignored")
            return None

        updated = self._accounts[index].model_copy(update=changes)
        self._accounts[index] = updated
        self._save()
        self._write_companion()

        if self._active_id == updated.id:
            await self._broadcast(AccountEvent.ACCOUNT_CHANGED, updated)
        return updated

    async def migrate_from_legacy_credentials(self, sites: list[str] | None = None) -> Account | None:
        """Create an account from credentials stored before multi-account support."""
        if self._accounts:
            return None

        server_url = self.secrets.load(SecretKey.SERVER_URL)
        raw_provider = self.secrets.load(SecretKey.PROVIDER_TYPE)
        if not server_url or not raw_provider:
            return None
        try:
            provider_type = ProviderType(raw_provider)
        except ValueError:
            logger.warning(f"Unknown legacy provider type '{raw_provider}', skipping migration")
            return None

        if provider_type is ProviderType.UMAMI:
            credentials = AccountCredentials(token=self.secrets.load(SecretKey.TOKEN))
        else:
            credentials = AccountCredentials(api_key=self.secrets.load(SecretKey.API_KEY))

        try:
            account = Account(
                server_url=server_url,
                provider_type=provider_type,
                credentials=credentials,
                sites=sites if provider_type is ProviderType.PLAUSIBLE else None,
            )
        except ValidationError:
            logger.warning("Legacy credentials are incomplete, skipping migration")
            return None

        logger.info(f"Migrating legacy credentials for {server_url}")
        return await self.add_account(account)

    def restore_active_credentials(self) -> None:
        """Rewrite the active account's credentials to the secret store.

        Used at startup, when the store may have been emptied since the
        account list was last saved.
        """
        account = self.active_account
        if account is not None:
            self._apply_credentials(account)

    # =========================================================================
    # Persistence
    # =========================================================================

    def _apply_credentials(self, account: Account) -> None:
        self.secrets.save(SecretKey.SERVER_URL, account.server_url)
        self.secrets.save(SecretKey.PROVIDER_TYPE, account.provider_type.value)
        if account.provider_type is ProviderType.UMAMI:
            self.secrets.save(SecretKey.TOKEN, account.credentials.token)
            self.secrets.delete(SecretKey.API_KEY)
        else:
            self.secrets.save(SecretKey.API_KEY, account.credentials.api_key)
            self.secrets.delete(SecretKey.TOKEN)

    def _load(self) -> None:
        if not self.accounts_path.exists():
            return
        try:
            raw = json.loads(self.accounts_path.read_text(encoding="utf-8"))
            self._accounts = _accounts_adapter.validate_python(raw.get("accounts", []))
        except (json.JSONDecodeError, ValidationError, AttributeError) as e:
            logger.error(f"Could not read accounts from {self.accounts_path}: {e}")
            self._accounts = []
            return

        active_id = raw.get("active_id")
        if active_id and self.get(active_id):
            self._active_id = active_id
        elif self._accounts:
            self._active_id = self._accounts[0].id

    def _save(self) -> None:
        payload = {
            "active_id": self._active_id,
            "accounts": _accounts_adapter.dump_python(self._accounts, mode="json"),
        }
        self.accounts_path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.accounts_path.with_suffix(".tmp")
        tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        tmp.replace(self.accounts_path)

    def _write_companion(self) -> None:
        """Account summaries for out-of-process readers (widgets)."""
        if self.companion_path is None:
            return
        rows = [
            {
                "id": account.id,
                "name": account.name,
                "serverURL": account.server_url,
                "providerType": account.provider_type.value,
                "token": account.secret,
                "sites": account.sites,
            }
            for account in self._accounts
        ]
        try:
            self.companion_path.parent.mkdir(parents=True, exist_ok=True)
            self.companion_path.write_text(json.dumps(rows), encoding="utf-8")
        except OSError as e:
            logger.error(f"Failed to write companion accounts file: {e}")
