"""Process configuration read from ``TASKGATE_*`` environment variables."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

from taskgate.core.scheduler import SchedulerConfig

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


def _parse_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _parse_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


@dataclass(frozen=True)
class Settings:
    """Startup settings for the TaskGate service."""

    host: str = "0.0.0.0"
    port: int = 8080
    max_concurrency: int = 4
    log_level: str = "INFO"
    log_json: bool = True
    api_key: str | None = None

    def __post_init__(self) -> None:
        if not 0 < self.port < 65536:
            raise ValueError(f"port must be between 1 and 65535, got {self.port}")
        # Validates max_concurrency
        self.scheduler_config()

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> Settings:
        """Build settings from *env* (defaults to :data:`os.environ`)."""
        env = os.environ if env is None else env
        return cls(
            host=env.get("TASKGATE_HOST") or cls.host,
            port=_parse_int(env, "TASKGATE_PORT", cls.port),
            max_concurrency=_parse_int(env, "TASKGATE_MAX_CONCURRENCY", cls.max_concurrency),
            log_level=env.get("TASKGATE_LOG_LEVEL") or cls.log_level,
            log_json=_parse_bool(env, "TASKGATE_LOG_JSON", cls.log_json),
            api_key=env.get("TASKGATE_API_KEY") or None,
        )

    def scheduler_config(self) -> SchedulerConfig:
        return SchedulerConfig(max_concurrency=self.max_concurrency)
