"""Environment-driven settings."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping
from enum import StrEnum


class StatusGating(StrEnum):
    """When an enqueued agent status starts gating new calls.

    DEFERRED keeps the old availability until the active calls end;
    IMMEDIATE applies it as soon as the status is requested.
    """

    DEFERRED = "deferred"
    IMMEDIATE = "immediate"


_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


@dataclasses.dataclass(frozen=True)
class Settings:
    registration_url: str = ""
    registration_timeout: float = 5.0
    wrapup_delay: float = 5.0
    enqueued_status_gating: StatusGating = StatusGating.DEFERRED
    show_login_page: bool = False
    log_level: str = "INFO"


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
    if value < 0:
        raise ValueError(f"{name} must not be negative, got {raw!r}")
    return value


def _bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None:
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    """Build Settings from *env* (defaults to ``os.environ``)."""
    if env is None:
        env = os.environ
    gating = env.get("ENQUEUED_STATUS_GATING", StatusGating.DEFERRED).strip().lower()
    try:
        enqueued_status_gating = StatusGating(gating)
    except ValueError:
        raise ValueError(
            f"ENQUEUED_STATUS_GATING must be one of "
            f"{', '.join(g.value for g in StatusGating)}, got {gating!r}"
        ) from None
    return Settings(
        registration_url=env.get("REGISTRATION_URL", "").strip(),
        registration_timeout=_float(env, "REGISTRATION_TIMEOUT", 5.0),
        wrapup_delay=_float(env, "WRAPUP_DELAY", 5.0),
        enqueued_status_gating=enqueued_status_gating,
        show_login_page=_bool(env, "SHOW_LOGIN_PAGE", False),
        log_level=env.get("LOG_LEVEL", "INFO").strip().upper() or "INFO",
    )
