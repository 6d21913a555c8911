"""
Secret store contract.

The real store (OS keychain or similar) lives outside this library. Only the
Account Registry writes the provider-identifying keys; adapters only read.
"""
import json
import logging
import os
from enum import Enum
from pathlib import Path
from threading import Lock
from typing import Protocol

logger = logging.getLogger(__name__)


class SecretKey(str, Enum):
    """Well-known secret names."""
    SERVER_URL = "serverURL"
    TOKEN = "authToken"
    USERNAME = "username"
    PROVIDER_TYPE = "providerType"
    API_KEY = "apiKey"


class SecretStore(Protocol):
    """Opaque save/load/delete of string secrets by key."""

    def save(self, key: SecretKey, value: str) -> None: ...

    def load(self, key: SecretKey) -> str | None: ...

    def delete(self, key: SecretKey) -> None: ...


def delete_all(store: SecretStore) -> None:
    """Remove every well-known key from a store."""
    for key in SecretKey:
        store.delete(key)


class MemorySecretStore:
    """Process-local store, used by tests and ephemeral shells."""

    def __init__(self, initial: dict[SecretKey, str] | None = None):
        self._values: dict[str, str] = {}
        self._lock = Lock()
        for key, value in (initial or {}).items():
            self.save(key, value)

    def save(self, key: SecretKey, value: str) -> None:
        with self._lock:
            self._values[SecretKey(key).value] = value

    def load(self, key: SecretKey) -> str | None:
        with self._lock:
            return self._values.get(SecretKey(key).value)

    def delete(self, key: SecretKey) -> None:
        with self._lock:
            self._values.pop(SecretKey(key).value, None)


class FileSecretStore:
    """JSON file store with owner-only permissions.

    Every save rewrites the whole file so a reader never sees a partial
    credential set. Suitable for desktop shells without a keychain.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = Lock()

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning(f"Secret file {self.path} is corrupt, starting empty")
            return {}

    def _write(self, values: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".tmp")
        tmp.write_text(json.dumps(values), encoding="utf-8")
        os.chmod(tmp, 0o600)
        tmp.replace(self.path)

    def save(self, key: SecretKey, value: str) -> None:
        with self._lock:
            values = self._read()
            values[SecretKey(key).value] = value
            self._write(values)

    def load(self, key: SecretKey) -> str | None:
        with self._lock:
            return self._read().get(SecretKey(key).value)

    def delete(self, key: SecretKey) -> None:
        with self._lock:
            values = self._read()
            if values.pop(SecretKey(key).value, None) is not None:
                self._write(values)
