from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from .public_config import PublicConfig


class ConfigError(RuntimeError):
    pass


_FAILURE_POLICIES = {"continue", "abort"}


@dataclass(frozen=True, slots=True)
class Settings:
    """
    Settings view (dot-access) over the loaded config sources.
    """

    public: PublicConfig

    def __getattr__(self, name: str) -> Any:
        return getattr(self.public, name)

    def cors_origin_list(self) -> list[str]:
        return self.public.cors_origin_list()


def _validate(s: Settings) -> None:
    policy = str(s.public.variant_failure_policy or "").strip().lower()
    if policy not in _FAILURE_POLICIES:
        raise ConfigError(
            f"VARIANT_FAILURE_POLICY must be one of {sorted(_FAILURE_POLICIES)}, got {policy!r}"
        )
    if float(s.public.cancel_grace_sec) < 0:
        raise ConfigError("CANCEL_GRACE_SEC must be >= 0")
    if int(s.public.scheduler_event_queue_max) < 1:
        raise ConfigError("SCHEDULER_EVENT_QUEUE_MAX must be >= 1")
    if int(s.public.render_fps) < 1:
        raise ConfigError("RENDER_FPS must be >= 1")


def get_safe_config_report() -> dict[str, Any]:
    """
    Deterministic config report (paths are stringified for stable JSON output).
    """
    s = get_settings()
    out: dict[str, Any] = {}
    for k, v in s.public.model_dump().items():
        out[k] = str(v) if hasattr(v, "__fspath__") else v
    return {"public": out}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    s = Settings(public=PublicConfig())
    _validate(s)
    return s

