from __future__ import annotations
"""Connection settings and their persistence."""

from dataclasses import dataclass
import json
import logging
from pathlib import Path
from typing import Any, Mapping

import keyring
from keyring.errors import KeyringError

from .errors import ConfigurationError
from .models import DEFAULT_PAGE_SIZE

LOGGER = logging.getLogger(__name__)

REQUIRED_FIELDS = ("key", "secret", "bucket")


@dataclass
class StorageSettings:
    """Everything needed to reach one bucket."""

    key: str
    secret: str
    bucket: str
    region: str = ""
    endpoint_url: str = ""
    path_prefix: str = ""
    page_size: int = DEFAULT_PAGE_SIZE

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any]) -> "StorageSettings":
        """Build settings from a flat ``{key, secret, region, bucket}`` record."""
        missing = [name for name in REQUIRED_FIELDS if not config.get(name)]
        if missing:
            raise ConfigurationError(f"Missing storage setting(s): {', '.join(missing)}")
        return cls(
            key=str(config["key"]),
            secret=str(config["secret"]),
            bucket=str(config["bucket"]),
            region=str(config.get("region") or ""),
            endpoint_url=str(config.get("endpoint_url") or config.get("endpoint") or ""),
            path_prefix=str(config.get("prefix") or config.get("root") or ""),
            page_size=_coerce_page_size(config.get("page_size", DEFAULT_PAGE_SIZE)),
        )


def _coerce_page_size(value: object) -> int:
    try:
        page_size = int(value)
    except (TypeError, ValueError):
        return DEFAULT_PAGE_SIZE
    if page_size <= 0:
        return DEFAULT_PAGE_SIZE
    return page_size


class KeychainStore:
    """Encapsulates OS keychain access for secrets."""

    def __init__(self, service_name: str = "pys3fs"):
        self._service_name = service_name

    def get_secret(self, account: str) -> str:
        if not account:
            return ""
        try:
            return keyring.get_password(self._service_name, account) or ""
        except KeyringError:
            LOGGER.warning("Keychain lookup failed for '%s'", account)
            return ""

    def set_secret(self, account: str, secret: str) -> bool:
        """Store ``secret`` for ``account``; return whether the keychain kept it."""
        if not account:
            return False
        if not secret:
            self.delete_secret(account)
            return True
        try:
            keyring.set_password(self._service_name, account, secret)
        except KeyringError:
            LOGGER.warning("Keychain update failed for '%s'", account)
            return False
        return True

    def delete_secret(self, account: str) -> None:
        if not account:
            return
        try:
            keyring.delete_password(self._service_name, account)
        except KeyringError:
            return


class SettingsStorage:
    """JSON-backed store for :class:`StorageSettings`.

    The secret never lands in the JSON file; it lives in the OS keychain
    under the access key. A plaintext ``secret`` found in the file is moved
    to the keychain on load.
    """

    def __init__(self, storage_path: str | Path | None = None, keychain: KeychainStore | None = None):
        if storage_path is None:
            storage_path = Path.home() / ".pys3fs_settings.json"
        self._path = Path(storage_path)
        self._keychain = keychain or KeychainStore()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> StorageSettings:
        if not self._path.exists():
            raise ConfigurationError(f"Settings file not found: {self._path}")
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise ConfigurationError(f"Unable to read settings from {self._path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigurationError(f"Settings in {self._path} must be a JSON object")

        secret = data.get("secret") or ""
        if secret:
            if self._keychain.set_secret(str(data.get("key", "")), secret):
                sanitized = {name: value for name, value in data.items() if name != "secret"}
                self._write_data(sanitized)
            else:
                LOGGER.warning("Keeping plaintext secret in %s; keychain unavailable", self._path)
        else:
            secret = self._keychain.get_secret(str(data.get("key", "")))
        return StorageSettings.from_mapping(dict(data, secret=secret))

    def save(self, settings: StorageSettings) -> None:
        stored = self._keychain.set_secret(settings.key, settings.secret)
        payload = {
            "key": settings.key,
            "bucket": settings.bucket,
            "region": settings.region,
            "endpoint_url": settings.endpoint_url,
            "prefix": settings.path_prefix,
            "page_size": max(int(settings.page_size), 1),
        }
        if not stored and settings.secret:
            payload["secret"] = settings.secret
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._write_data(payload)

    def _write_data(self, data: dict[str, Any]) -> None:
        self._path.write_text(json.dumps(data, indent=2), encoding="utf-8")
