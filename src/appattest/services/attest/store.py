"""Durable storage of the verified key identifier."""
from __future__ import annotations

import contextlib
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Protocol

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

from appattest.config.const import KEY_ID_STORAGE_KEY, KEYRING_SERVICE_NAME, STATE_FILENAME

from .errors import KeyStoreError

__all__ = ["KeyIdStore", "FileKeyIdStore", "KeyringKeyIdStore", "KeyringUnavailableError", "state_path"]

_log = logging.getLogger("appattest.store")


class KeyIdStore(Protocol):
    """Write-once store for the key identifier accepted by the relying party.

    ``save`` refuses to replace a different stored identifier; ``clear`` is the
    only way to forget it.
    """

    def load(self) -> str | None: ...

    def save(self, key_id: str) -> None: ...

    def clear(self) -> None: ...


def state_path(base_dir: Path) -> Path:
    return base_dir / "state" / STATE_FILENAME


def _check_overwrite(existing: str | None, key_id: str) -> bool:
    """Return True when ``key_id`` is already stored."""
    if existing is None:
        return False
    if existing != key_id:
        raise KeyStoreError(f"a different key identifier is already stored ({existing})")
    return True


class FileKeyIdStore:
    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    @classmethod
    def in_base_dir(cls, base_dir: Path) -> "FileKeyIdStore":
        return cls(state_path(base_dir))

    def load(self) -> str | None:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, json.JSONDecodeError) as exc:
            raise KeyStoreError(f"failed to read {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            return None
        value = data.get(KEY_ID_STORAGE_KEY)
        return str(value) if value else None

    def save(self, key_id: str) -> None:
        if not key_id:
            raise KeyStoreError("refusing to store an empty key identifier")
        if _check_overwrite(self.load(), key_id):
            return
        payload = json.dumps({KEY_ID_STORAGE_KEY: key_id}, ensure_ascii=False, indent=2)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".key-id-", dir=self.path.parent)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(payload)
                os.chmod(tmp_name, 0o600)
                os.replace(tmp_name, self.path)
            except BaseException:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_name)
                raise
        except OSError as exc:
            raise KeyStoreError(f"failed to write {self.path}: {exc}") from exc
        _log.info("stored verified key identifier in %s", self.path)

    def clear(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as exc:
            raise KeyStoreError(f"failed to remove {self.path}: {exc}") from exc


class KeyringUnavailableError(KeyStoreError):
    """Raised when the system keyring backend is not available."""


class KeyringKeyIdStore:
    """Keeps the key identifier under ``appAttestKeyId`` in the system keyring."""

    def __init__(self, service: str = KEYRING_SERVICE_NAME) -> None:
        self.service = service

    def load(self) -> str | None:
        try:
            value = keyring.get_password(self.service, KEY_ID_STORAGE_KEY)
        except KeyringError as exc:
            raise KeyringUnavailableError("failed to load key identifier from keyring") from exc
        return value or None

    def save(self, key_id: str) -> None:
        if not key_id:
            raise KeyStoreError("refusing to store an empty key identifier")
        if _check_overwrite(self.load(), key_id):
            return
        try:
            keyring.set_password(self.service, KEY_ID_STORAGE_KEY, key_id)
        except KeyringError as exc:
            raise KeyringUnavailableError("failed to write key identifier to keyring") from exc
        _log.info("stored verified key identifier in keyring service %s", self.service)

    def clear(self) -> None:
        try:
            keyring.delete_password(self.service, KEY_ID_STORAGE_KEY)
        except PasswordDeleteError:
            return
        except KeyringError as exc:
            raise KeyringUnavailableError("failed to delete key identifier from keyring") from exc
