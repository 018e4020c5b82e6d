from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    # HTTP server
    host: str = os.getenv("SVCPROXY_HOST", "0.0.0.0")
    port: int = _env_int("SVCPROXY_PORT", 8080)
    log_level: str = os.getenv("SVCPROXY_LOG_LEVEL", "INFO")

    # Backends
    upstream_scheme: str = os.getenv("SVCPROXY_UPSTREAM_SCHEME", "http")
    upstream_timeout_s: float = _env_float("SVCPROXY_UPSTREAM_TIMEOUT_S", 30.0)

    # Kubernetes watches
    in_cluster: bool = _env_bool("SVCPROXY_IN_CLUSTER", True)
    watch_max_failures: int = _env_int("SVCPROXY_WATCH_MAX_FAILURES", 3)
    watch_retry_delay_s: float = _env_float("SVCPROXY_WATCH_RETRY_DELAY_S", 5.0)


settings = Settings()
