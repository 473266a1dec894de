"""Configuration models and helpers for BuyTime."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional


DEFAULT_API_URL = "http://127.0.0.1:8787"


@dataclass(slots=True)
class ApiSettings:
    """Connection settings for the remote balance service."""

    base_url: str = DEFAULT_API_URL
    token: Optional[str] = None
    timeout: timedelta = timedelta(seconds=10)

    @classmethod
    def from_env(cls) -> "ApiSettings":
        timeout = os.environ.get("BUYTIME_API_TIMEOUT")
        return cls(
            base_url=os.environ.get("BUYTIME_API_URL", DEFAULT_API_URL).rstrip("/"),
            token=os.environ.get("BUYTIME_API_TOKEN") or None,
            timeout=timedelta(seconds=float(timeout)) if timeout else timedelta(seconds=10),
        )


@dataclass(slots=True)
class PreferenceSettings:
    """Timing rules for the preference cache."""

    debounce: timedelta = timedelta(milliseconds=500)
    error_display: timedelta = timedelta(seconds=3)
    ttl: timedelta = timedelta(hours=24)


@dataclass(slots=True)
class MonitorSettings:
    """Runtime configuration for the usage monitor."""

    sample_interval: timedelta = timedelta(seconds=5)
    enforce_shield: bool = True

    @classmethod
    def from_intervals(
        cls,
        sample_seconds: float,
        enforce_shield: bool = True,
    ) -> "MonitorSettings":
        return cls(
            sample_interval=timedelta(seconds=sample_seconds),
            enforce_shield=enforce_shield,
        )
