"""Controller settings read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e
    if value < 0:
        raise ValueError(f"{name} must not be negative, got {value}")
    return value


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e
    if value < 0:
        raise ValueError(f"{name} must not be negative, got {value}")
    return value


@dataclass(frozen=True)
class ControllerSettings:
    """Settings shared by every controller of the provider."""

    metrics_port: int = 8080
    max_workers: int = 4
    poll_interval: float = 60.0
    reconcile_timeout: float = 60.0
    min_retry_delay: float = 1.0
    max_retry_delay: float = 60.0
    max_conflict_restarts: int = 5
    watch_namespace: str | None = None

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> ControllerSettings:
        """Read settings from environment variables.

        Raises:
            ValueError: If a numeric variable is malformed
        """
        env = os.environ if env is None else env
        settings = cls(
            metrics_port=_int(env, "METRICS_PORT", 8080),
            max_workers=max(_int(env, "MAX_WORKERS", 4), 1),
            poll_interval=_float(env, "POLL_INTERVAL_SECONDS", 60.0),
            reconcile_timeout=_float(env, "RECONCILE_TIMEOUT_SECONDS", 60.0),
            min_retry_delay=_float(env, "MIN_RETRY_DELAY_SECONDS", 1.0),
            max_retry_delay=_float(env, "MAX_RETRY_DELAY_SECONDS", 60.0),
            max_conflict_restarts=_int(env, "MAX_CONFLICT_RESTARTS", 5),
            watch_namespace=env.get("WATCH_NAMESPACE") or None,
        )
        if settings.min_retry_delay > settings.max_retry_delay:
            raise ValueError("MIN_RETRY_DELAY_SECONDS must not exceed MAX_RETRY_DELAY_SECONDS")
        return settings
