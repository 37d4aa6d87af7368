from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Callable, TypeVar

from dotenv import load_dotenv

NumberT = TypeVar("NumberT", int, float)


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class ClientConfig:
    env_name: str
    api_base_url: str
    timeout_seconds: float = 10.0
    retries: int = 2
    retry_backoff_seconds: float = 0.3
    max_connections: int = 10
    verify_ssl: bool = True
    sync_debounce_seconds: float = 0.5
    sync_status_seconds: float = 1.5
    probe_interval_seconds: float = 5.0

    def with_base_url(self, base_url: str) -> ClientConfig:
        """Same settings against another server, e.g. the one saved on the device."""
        return replace(self, api_base_url=base_url.rstrip("/"))


def _env_number(
    name: str,
    default: NumberT,
    parse: Callable[[str], NumberT],
    accept: Callable[[NumberT], bool],
    expected: str,
) -> NumberT:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = parse(raw.strip())
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc
    if not accept(value):
        raise ConfigError(f"{name} must be {expected}, got {value}")
    return value


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _base_url(env_name: str) -> str:
    for name in (f"GESTO_API_BASE_URL_{env_name.upper()}", "GESTO_API_BASE_URL"):
        value = (os.getenv(name) or "").strip()
        if value:
            return value.rstrip("/")
    raise ConfigError(f"GESTO_API_BASE_URL is not set (nor GESTO_API_BASE_URL_{env_name.upper()})")


def load_config(env_file: str | None = None) -> ClientConfig:
    """Read the client settings from the environment, after applying ``env_file``."""
    load_dotenv(env_file)
    env_name = (os.getenv("GESTO_ENV") or "dev").strip()

    return ClientConfig(
        env_name=env_name,
        api_base_url=_base_url(env_name),
        timeout_seconds=_env_number("GESTO_TIMEOUT_SECONDS", 10.0, float, lambda v: v > 0, "> 0"),
        retries=_env_number("GESTO_RETRIES", 2, int, lambda v: v >= 0, ">= 0"),
        retry_backoff_seconds=_env_number("GESTO_RETRY_BACKOFF_SECONDS", 0.3, float, lambda v: v >= 0, ">= 0"),
        max_connections=_env_number("GESTO_MAX_CONNECTIONS", 10, int, lambda v: v >= 1, ">= 1"),
        verify_ssl=_env_flag("GESTO_VERIFY_SSL", True),
        sync_debounce_seconds=_env_number(
            "GESTO_SYNC_DEBOUNCE_SECONDS", 0.5, float, lambda v: 0 < v <= 5, "in (0, 5]"
        ),
        sync_status_seconds=_env_number("GESTO_SYNC_STATUS_SECONDS", 1.5, float, lambda v: v >= 0, ">= 0"),
        probe_interval_seconds=_env_number("GESTO_PROBE_INTERVAL_SECONDS", 5.0, float, lambda v: v >= 1, ">= 1"),
    )
