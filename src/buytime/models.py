"""Domain models for the time ledger, preferences and restrictions."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional


FOCUS_MIN_MINUTES = 15
FOCUS_MAX_MINUTES = 60
DEFAULT_SPEND_UNIT_MINUTES = 5
DEFAULT_FOCUS_MINUTES = 30


class FocusMode(str, Enum):
    """Difficulty tier controlling how much reward a focus minute buys."""

    HARD = "hard"
    MEDIUM = "medium"
    EASY = "easy"
    FUN = "fun"

    @property
    def multiplier(self) -> float:
        return _MULTIPLIERS[self]

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @classmethod
    def ordered(cls) -> tuple["FocusMode", ...]:
        """Modes sorted by ascending multiplier."""
        return (cls.HARD, cls.MEDIUM, cls.EASY, cls.FUN)


_MULTIPLIERS = {
    FocusMode.HARD: 0.25,
    FocusMode.MEDIUM: 0.5,
    FocusMode.EASY: 0.75,
    FocusMode.FUN: 1.0,
}

_DISPLAY_NAMES = {
    FocusMode.HARD: "Hard 25%",
    FocusMode.MEDIUM: "Medium 50%",
    FocusMode.EASY: "Easy 75%",
    FocusMode.FUN: "Relax 100%",
}

DEFAULT_FOCUS_MODE = FocusMode.EASY


@dataclass(slots=True)
class LedgerSnapshot:
    """Point-in-time view of the shared ledger plus the foreground sync marker.

    ``last_confirmed_remote_value`` is ``None`` until the first successful sync.
    """

    available_minutes: int = 0
    last_confirmed_remote_value: Optional[int] = None
    spend_unit_minutes: int = DEFAULT_SPEND_UNIT_MINUTES
    earned_event_active: bool = False

    def __post_init__(self) -> None:
        self.available_minutes = max(0, int(self.available_minutes))
        self.spend_unit_minutes = max(1, int(self.spend_unit_minutes))

    @property
    def is_synced(self) -> bool:
        return self.last_confirmed_remote_value is not None

    @property
    def pending_delta(self) -> int:
        """Local earn/spend activity not yet confirmed by the remote service."""
        if self.last_confirmed_remote_value is None:
            return 0
        return self.available_minutes - self.last_confirmed_remote_value


@dataclass(slots=True)
class PreferenceSnapshot:
    """Focus preferences as cached on the device."""

    focus_duration_minutes: int = DEFAULT_FOCUS_MINUTES
    focus_mode: FocusMode = DEFAULT_FOCUS_MODE
    last_confirmed_focus_duration_minutes: int = DEFAULT_FOCUS_MINUTES
    last_confirmed_focus_mode: FocusMode = DEFAULT_FOCUS_MODE
    last_fetched_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        self.focus_duration_minutes = clamp_focus(self.focus_duration_minutes)
        self.last_confirmed_focus_duration_minutes = clamp_focus(
            self.last_confirmed_focus_duration_minutes
        )


def clamp_focus(minutes: float) -> int:
    return int(max(FOCUS_MIN_MINUTES, min(FOCUS_MAX_MINUTES, minutes)))


@dataclass(frozen=True, slots=True)
class RestrictionSelection:
    """Opaque set of blocked targets chosen by the user."""

    applications: frozenset[str] = field(default_factory=frozenset)
    categories: frozenset[str] = field(default_factory=frozenset)
    web_domains: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_empty(self) -> bool:
        return not (self.applications or self.categories or self.web_domains)

    def to_dict(self) -> dict[str, list[str]]:
        return {
            "applications": sorted(self.applications),
            "categories": sorted(self.categories),
            "web_domains": sorted(self.web_domains),
        }

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "RestrictionSelection":
        if not data:
            return cls()
        return cls(
            applications=frozenset(data.get("applications") or ()),
            categories=frozenset(data.get("categories") or ()),
            web_domains=frozenset(data.get("web_domains") or ()),
        )


@dataclass(slots=True)
class MonitoringSchedule:
    """A usage window registered with the activity center."""

    activity_id: str
    interval_start: datetime
    interval_end: datetime
    threshold_minutes: Optional[int] = None
    repeats: bool = False

    def rolled_forward(self) -> "MonitoringSchedule":
        """Return the next daily occurrence of a repeating window."""
        return replace(
            self,
            interval_start=self.interval_start + timedelta(days=1),
            interval_end=self.interval_end + timedelta(days=1),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "activity_id": self.activity_id,
            "interval_start": self.interval_start.isoformat(),
            "interval_end": self.interval_end.isoformat(),
            "threshold_minutes": self.threshold_minutes,
            "repeats": self.repeats,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MonitoringSchedule":
        return cls(
            activity_id=data["activity_id"],
            interval_start=datetime.fromisoformat(data["interval_start"]),
            interval_end=datetime.fromisoformat(data["interval_end"]),
            threshold_minutes=data.get("threshold_minutes"),
            repeats=bool(data.get("repeats", False)),
        )
