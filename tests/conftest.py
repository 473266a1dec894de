"""
Shared fixtures: in-memory stores, a controllable clock and fake remotes.

Each "process" in a test gets its own LedgerStore view over the same
MemoryKeyValueStore, mirroring how the app, the monitor and the overlay
share one database file on a device.
"""

from datetime import datetime, timedelta
from typing import Optional

import pytest

from buytime.api import BalanceRecord, PreferencesRecord
from buytime.db import MemoryKeyValueStore
from buytime.errors import NetworkError, ServerError
from buytime.ledger import LedgerStore, LocalCache
from buytime.models import RestrictionSelection
from buytime.shield import ActivityCenter


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeBalanceService:
    """Remote balance that records every call and can be told to fail."""

    def __init__(self, available_minutes: int = 0) -> None:
        self.available_minutes = available_minutes
        self.fail_get = False
        self.fail_update = False
        self.updates: list[int] = []
        self.gets = 0

    def get_balance(self) -> BalanceRecord:
        self.gets += 1
        if self.fail_get:
            raise NetworkError(ConnectionError("offline"))
        return BalanceRecord(available_minutes=self.available_minutes)

    def update_balance(self, available_minutes: int) -> BalanceRecord:
        if self.fail_update:
            raise ServerError()
        self.updates.append(available_minutes)
        self.available_minutes = available_minutes
        return BalanceRecord(available_minutes=available_minutes)

    def close(self) -> None:
        pass


class FakePreferenceService:
    def __init__(self, focus_duration_minutes: int = 30, focus_mode: str = "easy") -> None:
        self.focus_duration_minutes = focus_duration_minutes
        self.focus_mode = focus_mode
        self.fail_get = False
        self.fail_update = False
        self.updates: list[tuple[int, str]] = []
        self.gets = 0

    def get_preferences(self) -> PreferencesRecord:
        self.gets += 1
        if self.fail_get:
            raise NetworkError(ConnectionError("offline"))
        return PreferencesRecord(
            focus_duration_minutes=self.focus_duration_minutes,
            focus_mode=self.focus_mode,
        )

    def update_preferences(self, focus_duration_minutes: int, focus_mode: str) -> PreferencesRecord:
        if self.fail_update:
            raise ServerError()
        self.updates.append((focus_duration_minutes, focus_mode))
        self.focus_duration_minutes = focus_duration_minutes
        self.focus_mode = focus_mode
        return PreferencesRecord(
            focus_duration_minutes=focus_duration_minutes,
            focus_mode=focus_mode,
        )


class FakeRemote(FakeBalanceService):
    """Both remote surfaces behind one object, like BuyTimeClient."""

    def __init__(self, available_minutes: int = 0) -> None:
        super().__init__(available_minutes)
        self.focus_duration_minutes = 30
        self.focus_mode = "easy"
        self.preference_updates: list[tuple[int, str]] = []

    def get_preferences(self) -> PreferencesRecord:
        return PreferencesRecord(
            focus_duration_minutes=self.focus_duration_minutes,
            focus_mode=self.focus_mode,
        )

    def update_preferences(self, focus_duration_minutes: int, focus_mode: str) -> PreferencesRecord:
        self.preference_updates.append((focus_duration_minutes, focus_mode))
        self.focus_duration_minutes = focus_duration_minutes
        self.focus_mode = focus_mode
        return self.get_preferences()


class RecordingShield:
    """Shield backend that records calls and can be told to fail."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, Optional[RestrictionSelection]]] = []
        self.applied: Optional[RestrictionSelection] = None
        self.fail = False

    def apply_restriction(self, selection: RestrictionSelection) -> None:
        if self.fail:
            raise OSError("shield unavailable")
        self.calls.append(("apply", selection))
        self.applied = selection

    def clear_restriction(self) -> None:
        if self.fail:
            raise OSError("shield unavailable")
        self.calls.append(("clear", None))
        self.applied = None


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 2, 9, 0, 0))


@pytest.fixture
def shared_kv():
    return MemoryKeyValueStore()


@pytest.fixture
def ledger(shared_kv):
    return LedgerStore(shared_kv)


@pytest.fixture
def cache():
    return LocalCache(MemoryKeyValueStore())


@pytest.fixture
def balance_service():
    return FakeBalanceService()


@pytest.fixture
def preference_service():
    return FakePreferenceService()


@pytest.fixture
def shield():
    return RecordingShield()


@pytest.fixture
def center(shared_kv, clock):
    return ActivityCenter(shared_kv, clock=clock)


@pytest.fixture
def selection():
    return RestrictionSelection(
        applications=frozenset({"steam", "discord"}),
        web_domains=frozenset({"youtube.com"}),
    )


@pytest.fixture
def remote():
    return FakeRemote(available_minutes=0)
