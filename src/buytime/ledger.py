"""Typed views over the shared ledger store and the foreground-only cache.

The shared store is written by three independent processes: the foreground
app, the usage monitor and the spend overlay. Every field write is atomic on
its own, but there is no transaction spanning fields or spanning a read and
the following write. Two processes doing ``add_minutes`` at the same moment
can therefore lose one of the updates. That window is accepted: the
foreground app's next sync pushes whatever the ledger holds as a delta
against the last remote-confirmed value, so the ledger converges again.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from .db import KeyValueStore
from .models import (
    DEFAULT_SPEND_UNIT_MINUTES,
    FocusMode,
    LedgerSnapshot,
    MonitoringSchedule,
    RestrictionSelection,
)

logger = logging.getLogger(__name__)

AVAILABLE_MINUTES = "available_minutes"
EARNED_EVENT_ACTIVE = "earned_event_active"
SPEND_UNIT_MINUTES = "spend_unit_minutes"
BLOCKED_SELECTION = "blocked_selection"
ACTIVE_SCHEDULE = "active_schedule"

LAST_CONFIRMED = "balance_last_confirmed"
PREF_FOCUS_DURATION = "preferences_focus_duration_minutes"
PREF_FOCUS_MODE = "preferences_focus_mode"
PREF_LAST_FETCHED_AT = "preferences_last_fetched_at"


class LedgerStore:
    """State shared by every BuyTime process on this device."""

    def __init__(self, kv: KeyValueStore) -> None:
        self.kv = kv

    def get(self) -> LedgerSnapshot:
        """Read the shared fields. The sync marker lives in :class:`LocalCache`."""
        return LedgerSnapshot(
            available_minutes=self.available_minutes,
            spend_unit_minutes=self.spend_unit_minutes,
            earned_event_active=self.earned_event_active,
        )

    def set(self, snapshot: LedgerSnapshot) -> None:
        self.available_minutes = snapshot.available_minutes
        self.spend_unit_minutes = snapshot.spend_unit_minutes
        self.earned_event_active = snapshot.earned_event_active

    @property
    def available_minutes(self) -> int:
        return int(self.kv.get(AVAILABLE_MINUTES, 0))

    @available_minutes.setter
    def available_minutes(self, value: int) -> None:
        self.kv.set(AVAILABLE_MINUTES, max(0, int(value)))

    def add_minutes(self, delta: int) -> int:
        """Read-modify-write the balance, clamping at zero. Not atomic across processes."""
        value = max(0, self.available_minutes + int(delta))
        self.available_minutes = value
        return value

    @property
    def earned_event_active(self) -> bool:
        return bool(self.kv.get(EARNED_EVENT_ACTIVE, False))

    @earned_event_active.setter
    def earned_event_active(self, value: bool) -> None:
        self.kv.set(EARNED_EVENT_ACTIVE, bool(value))

    @property
    def spend_unit_minutes(self) -> int:
        value = int(self.kv.get(SPEND_UNIT_MINUTES, 0) or 0)
        return value if value > 0 else DEFAULT_SPEND_UNIT_MINUTES

    @spend_unit_minutes.setter
    def spend_unit_minutes(self, value: int) -> None:
        self.kv.set(SPEND_UNIT_MINUTES, max(1, int(value)))

    @property
    def blocked_selection(self) -> RestrictionSelection:
        try:
            return RestrictionSelection.from_dict(self.kv.get(BLOCKED_SELECTION))
        except (TypeError, ValueError, AttributeError):
            logger.exception("Failed to decode blocked selection; treating it as empty.")
            return RestrictionSelection()

    @blocked_selection.setter
    def blocked_selection(self, selection: RestrictionSelection) -> None:
        self.kv.set(BLOCKED_SELECTION, selection.to_dict())

    @property
    def active_schedule(self) -> Optional[MonitoringSchedule]:
        data = self.kv.get(ACTIVE_SCHEDULE)
        return MonitoringSchedule.from_dict(data) if data else None

    @active_schedule.setter
    def active_schedule(self, schedule: Optional[MonitoringSchedule]) -> None:
        if schedule is None:
            self.kv.delete(ACTIVE_SCHEDULE)
        else:
            self.kv.set(ACTIVE_SCHEDULE, schedule.to_dict())


class LocalCache:
    """Values only the foreground app reads or writes."""

    def __init__(self, kv: KeyValueStore) -> None:
        self.kv = kv

    @property
    def last_confirmed_remote_value(self) -> Optional[int]:
        value = self.kv.get(LAST_CONFIRMED)
        return None if value is None else int(value)

    @last_confirmed_remote_value.setter
    def last_confirmed_remote_value(self, value: Optional[int]) -> None:
        if value is None:
            self.kv.delete(LAST_CONFIRMED)
        else:
            self.kv.set(LAST_CONFIRMED, int(value))

    @property
    def has_preferences(self) -> bool:
        return self.kv.contains(PREF_FOCUS_DURATION)

    @property
    def focus_duration_minutes(self) -> Optional[int]:
        value = self.kv.get(PREF_FOCUS_DURATION)
        return None if value is None else int(value)

    @property
    def focus_mode(self) -> Optional[FocusMode]:
        raw = self.kv.get(PREF_FOCUS_MODE)
        try:
            return FocusMode(raw) if raw else None
        except ValueError:
            return None

    def write_preferences(self, duration: float, mode: FocusMode) -> None:
        self.kv.set(PREF_FOCUS_DURATION, int(duration))
        self.kv.set(PREF_FOCUS_MODE, mode.value)

    @property
    def last_fetched_at(self) -> Optional[datetime]:
        raw = self.kv.get(PREF_LAST_FETCHED_AT)
        return datetime.fromisoformat(raw) if raw else None

    def stamp_fetched_at(self, when: datetime) -> None:
        self.kv.set(PREF_LAST_FETCHED_AT, when.isoformat())
