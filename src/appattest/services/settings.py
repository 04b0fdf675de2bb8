"""Client configuration loaded from ``appattest.yaml`` with environment overrides."""
from __future__ import annotations

import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Mapping

import yaml

from appattest.config.const import (
    CONFIG_FILENAME,
    DEFAULT_BASE_DIR,
    DEFAULT_CLIENT_ID,
    DEFAULT_SUBJECT_ID,
    DEFAULT_TIMEOUT,
)
from appattest.services.attest.errors import SettingsError

__all__ = ["Settings", "load_settings", "save_settings", "config_path"]

ENV_PREFIX = "APPATTEST_"


@dataclass
class Settings:
    base_dir: str = DEFAULT_BASE_DIR
    attestation_challenge_url: str | None = None
    verify_attestation_url: str | None = None
    assertion_challenge_url: str | None = None
    verify_assertion_url: str | None = None
    ca_cert: str | None = None
    timeout: float = DEFAULT_TIMEOUT
    subject_id: str = DEFAULT_SUBJECT_ID
    client_id: str = DEFAULT_CLIENT_ID
    # "file" | "keyring"
    key_store: str = "file"
    log_level: str = "INFO"

    @property
    def base_path(self) -> Path:
        return Path(self.base_dir).expanduser()

    def keys_dir(self) -> Path:
        return self.base_path / "keys"

    def logs_dir(self) -> Path:
        return self.base_path / "logs"

    def require_urls(self) -> None:
        missing = [
            name
            for name in (
                "attestation_challenge_url",
                "verify_attestation_url",
                "assertion_challenge_url",
                "verify_assertion_url",
            )
            if not getattr(self, name)
        ]
        if missing:
            raise SettingsError("missing relying-party URLs: " + ", ".join(missing))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Settings":
        known = {f.name: f for f in fields(cls)}
        values: dict[str, Any] = {}
        for key, value in data.items():
            if key not in known or value is None:
                continue
            if key == "timeout":
                try:
                    value = float(value)
                except (TypeError, ValueError) as exc:
                    raise SettingsError(f"timeout must be a number, got {value!r}") from exc
                if value <= 0:
                    raise SettingsError("timeout must be positive")
            else:
                value = str(value)
            values[key] = value
        settings = cls(**values)
        if settings.key_store not in ("file", "keyring"):
            raise SettingsError(f"unknown key_store backend: {settings.key_store}")
        return settings


def config_path(base_dir: str | Path | None = None) -> Path:
    base = Path(base_dir or os.environ.get(ENV_PREFIX + "BASE_DIR") or DEFAULT_BASE_DIR).expanduser()
    return base / CONFIG_FILENAME


def _env_overrides(environ: Mapping[str, str]) -> dict[str, str]:
    overrides: dict[str, str] = {}
    for f in fields(Settings):
        value = environ.get(ENV_PREFIX + f.name.upper())
        if value:
            overrides[f.name] = value
    return overrides


def load_settings(path: Path | None = None, *, environ: Mapping[str, str] | None = None) -> Settings:
    environ = os.environ if environ is None else environ
    path = path or config_path(environ.get(ENV_PREFIX + "BASE_DIR"))
    data: dict[str, Any] = {}
    if path.exists():
        try:
            loaded = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as exc:
            raise SettingsError(f"Failed to parse {path}: {exc}") from exc
        if not isinstance(loaded, dict):
            raise SettingsError(f"{path} must contain a mapping")
        data.update(loaded)
    data.setdefault("base_dir", str(path.parent))
    data.update(_env_overrides(environ))
    return Settings.from_mapping(data)


def save_settings(settings: Settings, path: Path | None = None) -> Path:
    path = path or config_path(settings.base_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(asdict(settings), allow_unicode=True, sort_keys=False), encoding="utf-8")
    return path
