"""Tests for the account registry."""

import asyncio
import json

import pytest

from insightflow.accounts import AccountEvent, AccountRegistry
from insightflow.core.models import Account, AccountCredentials, ProviderType
from insightflow.secret_store import MemorySecretStore, SecretKey


def run_async(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def umami_account(url="https://umami.example.com", token="tok", name="") -> Account:
    return Account(
        name=name,
        server_url=url,
        provider_type=ProviderType.UMAMI,
        credentials=AccountCredentials(token=token),
    )


def plausible_account(url="https://plausible.io", key="key", sites=None) -> Account:
    return Account(
        server_url=url,
        provider_type=ProviderType.PLAUSIBLE,
        credentials=AccountCredentials(api_key=key),
        sites=sites or [],
    )


@pytest.fixture
def secrets():
    return MemorySecretStore()


@pytest.fixture
def registry(tmp_path, secrets):
    return AccountRegistry(
        secrets,
        tmp_path / "accounts.json",
        companion_path=tmp_path / "widget_accounts.json",
        switch_delay=0,
    )


class TestAddAccount:
    """Test insertion, upsert and first-account activation."""

    def test_first_account_becomes_active(self, registry, secrets):
        account = run_async(registry.add_account(umami_account()))

        assert registry.active_account.id == account.id
        assert secrets.load(SecretKey.SERVER_URL) == "https://umami.example.com"
        assert secrets.load(SecretKey.TOKEN) == "tok"
        assert secrets.load(SecretKey.PROVIDER_TYPE) == "umami"

    def test_second_account_does_not_switch(self, registry, secrets):
        first = run_async(registry.add_account(umami_account()))
        run_async(registry.add_account(plausible_account()))

        assert registry.active_account.id == first.id
        assert registry.has_multiple_accounts
        assert secrets.load(SecretKey.API_KEY) is None

    def test_same_server_and_provider_is_replaced_keeping_id(self, registry):
        original = run_async(registry.add_account(umami_account(token="old")))
        replaced = run_async(registry.add_account(umami_account(token="new")))

        assert replaced.id == original.id
        assert len(registry.accounts) == 1
        assert registry.get(original.id).credentials.token == "new"

    def test_replacing_active_account_refreshes_secrets(self, registry, secrets):
        run_async(registry.add_account(umami_account(token="old")))
        run_async(registry.add_account(umami_account(token="new")))
        assert secrets.load(SecretKey.TOKEN) == "new"

    def test_same_server_different_provider_is_separate(self, registry):
        run_async(registry.add_account(umami_account(url="https://stats.example.com")))
        run_async(registry.add_account(plausible_account(url="https://stats.example.com")))
        assert len(registry.accounts) == 2


class TestSwitching:
    """Test credential ordering and notifications on switch."""

    def test_credentials_written_before_subscribers_run(self, registry, secrets):
        run_async(registry.add_account(umami_account()))
        target = run_async(registry.add_account(plausible_account()))
        seen = []

        def on_change(account):
            seen.append((account.id, secrets.load(SecretKey.API_KEY), secrets.load(SecretKey.TOKEN)))

        registry.subscribe(AccountEvent.ACCOUNT_CHANGED, on_change)
        run_async(registry.set_active_account(target))

        assert seen == [(target.id, "key", None)]
        assert secrets.load(SecretKey.SERVER_URL) == "https://plausible.io"

    def test_async_subscribers_are_awaited(self, registry):
        seen = []

        async def on_change(account):
            await asyncio.sleep(0)
            seen.append(account.id)

        registry.subscribe(AccountEvent.ACCOUNT_CHANGED, on_change)
        account = run_async(registry.add_account(umami_account()))

        assert seen == [account.id]

    def test_generation_bumps_per_switch(self, registry):
        first = run_async(registry.add_account(umami_account()))
        second = run_async(registry.add_account(plausible_account()))
        before = registry.generation

        run_async(registry.set_active_account(second))
        run_async(registry.set_active_account(first))

        assert registry.generation == before + 2

    def test_superseded_switch_does_not_broadcast(self, tmp_path, secrets):
        registry = AccountRegistry(secrets, tmp_path / "accounts.json", switch_delay=0.05)
        first = run_async(registry.add_account(umami_account()))
        second = run_async(registry.add_account(plausible_account()))
        seen = []
        registry.subscribe(AccountEvent.ACCOUNT_CHANGED, lambda account: seen.append(account.id))

        async def switch_twice():
            await asyncio.gather(registry.set_active_account(second), registry.set_active_account(first))

        run_async(switch_twice())

        assert seen == [first.id]
        assert registry.active_account.id == first.id

    def test_failing_subscriber_does_not_block_others(self, registry):
        seen = []

        def broken(account):
            raise RuntimeError("boom")

        registry.subscribe(AccountEvent.ACCOUNT_CHANGED, broken)
        registry.subscribe(AccountEvent.ACCOUNT_CHANGED, lambda account: seen.append(account))
        run_async(registry.add_account(umami_account()))

        assert len(seen) == 1

    def test_unsubscribe(self, registry):
        seen = []
        unsubscribe = registry.subscribe(AccountEvent.ACCOUNT_CHANGED, seen.append)
        unsubscribe()
        unsubscribe()

        run_async(registry.add_account(umami_account()))

        assert seen == []


class TestRemoval:
    """Test removal and promotion of the next account."""

    def test_removing_active_promotes_first_remaining(self, registry, secrets):
        first = run_async(registry.add_account(umami_account()))
        second = run_async(registry.add_account(plausible_account()))

        run_async(registry.remove_account(first))

        assert registry.active_account.id == second.id
        assert secrets.load(SecretKey.API_KEY) == "key"
        assert secrets.load(SecretKey.TOKEN) is None

    def test_removing_inactive_keeps_active(self, registry):
        first = run_async(registry.add_account(umami_account()))
        second = run_async(registry.add_account(plausible_account()))

        run_async(registry.remove_account(second))

        assert registry.active_account.id == first.id
        assert len(registry.accounts) == 1

    def test_removing_last_account_clears_everything(self, registry, secrets):
        account = run_async(registry.add_account(umami_account()))
        removed = []
        registry.subscribe(AccountEvent.ALL_ACCOUNTS_REMOVED, removed.append)

        run_async(registry.remove_account(account))

        assert removed == [None]
        assert registry.active_account is None
        for key in SecretKey:
            assert secrets.load(key) is None


class TestUpdates:
    def test_update_sites_of_active_account_rebroadcasts(self, registry):
        account = run_async(registry.add_account(plausible_account()))
        seen = []
        registry.subscribe(AccountEvent.ACCOUNT_CHANGED, seen.append)

        updated = run_async(registry.update_account_sites(account, ["a.com", "b.com"]))

        assert updated.sites == ["a.com", "b.com"]
        assert registry.active_sites() == ["a.com", "b.com"]
        assert [a.sites for a in seen] == [["a.com", "b.com"]]

    def test_rename(self, registry):
        account = run_async(registry.add_account(umami_account()))
        renamed = run_async(registry.rename_account(account, "  Work  "))
        assert renamed.display_name == "Work"

    def test_update_unknown_account(self, registry):
        assert run_async(registry.rename_account(umami_account(), "x")) is None


class TestPersistence:
    """Test the accounts file and the companion file."""

    def test_reload_restores_accounts_and_active(self, tmp_path, registry, secrets):
        run_async(registry.add_account(umami_account()))
        second = run_async(registry.add_account(plausible_account(sites=["a.com"])))
        run_async(registry.set_active_account(second))

        reloaded = AccountRegistry(MemorySecretStore(), tmp_path / "accounts.json", switch_delay=0)

        assert [a.id for a in reloaded.accounts] == [a.id for a in registry.accounts]
        assert reloaded.active_account.id == second.id
        assert reloaded.active_account.sites == ["a.com"]

    def test_restore_active_credentials(self, tmp_path, registry):
        run_async(registry.add_account(umami_account(token="persisted")))
        empty = MemorySecretStore()

        reloaded = AccountRegistry(empty, tmp_path / "accounts.json", switch_delay=0)
        reloaded.restore_active_credentials()

        assert empty.load(SecretKey.TOKEN) == "persisted"

    def test_corrupt_file_starts_empty(self, tmp_path, secrets):
        path = tmp_path / "accounts.json"
        path.write_text("{not json")
        assert AccountRegistry(secrets, path).accounts == []

    def test_companion_file_rows(self, tmp_path, registry):
        run_async(registry.add_account(umami_account(name="Blog")))
        run_async(registry.add_account(plausible_account(sites=["a.com"])))

        rows = json.loads((tmp_path / "widget_accounts.json").read_text())

        assert [row["providerType"] for row in rows] == ["umami", "plausible"]
        assert rows[0]["serverURL"] == "https://umami.example.com"
        assert rows[0]["token"] == "tok"
        assert rows[1]["token"] == "key"
        assert rows[1]["sites"] == ["a.com"]


class TestLegacyMigration:
    """Test import of single-account credentials."""

    def test_umami_migration(self, registry, secrets):
        secrets.save(SecretKey.SERVER_URL, "https://umami.example.com")
        secrets.save(SecretKey.PROVIDER_TYPE, "umami")
        secrets.save(SecretKey.TOKEN, "legacy")

        account = run_async(registry.migrate_from_legacy_credentials())

        assert account.credentials.token == "legacy"
        assert registry.active_account.id == account.id

    def test_plausible_migration_keeps_sites(self, registry, secrets):
        secrets.save(SecretKey.SERVER_URL, "https://plausible.io")
        secrets.save(SecretKey.PROVIDER_TYPE, "plausible")
        secrets.save(SecretKey.API_KEY, "legacy-key")

        account = run_async(registry.migrate_from_legacy_credentials(sites=["a.com"]))

        assert account.sites == ["a.com"]

    def test_skipped_when_accounts_exist(self, registry, secrets):
        run_async(registry.add_account(umami_account()))
        assert run_async(registry.migrate_from_legacy_credentials()) is None

    def test_skipped_without_credential(self, registry, secrets):
        secrets.save(SecretKey.SERVER_URL, "https://umami.example.com")
        secrets.save(SecretKey.PROVIDER_TYPE, "umami")

        assert run_async(registry.migrate_from_legacy_credentials()) is None
        assert registry.accounts == []

    def test_unknown_provider_type(self, registry, secrets):
        secrets.save(SecretKey.SERVER_URL, "https://x.example.com")
        secrets.save(SecretKey.PROVIDER_TYPE, "matomo")
        assert run_async(registry.migrate_from_legacy_credentials()) is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
