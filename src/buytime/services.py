"""Wiring of stores, backends and reconcilers for each execution context."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .api import BuyTimeClient
from .balance import BalanceReconciler
from .config import ApiSettings, PreferenceSettings
from .db import KeyValueStore, SqliteKeyValueStore
from .ledger import LedgerStore, LocalCache
from .paths import get_cache_path, get_ledger_path
from .preferences import PreferenceReconciler
from .restriction import RestrictionStateMachine
from .shield import ActivityCenter, ProcessShield


@dataclass(slots=True)
class DeviceServices:
    """What the monitor and the spend overlay share with the app."""

    ledger: LedgerStore
    center: ActivityCenter
    shield: ProcessShield
    machine: RestrictionStateMachine

    @classmethod
    def from_store(cls, kv: KeyValueStore) -> "DeviceServices":
        ledger = LedgerStore(kv)
        center = ActivityCenter(kv)
        shield = ProcessShield(kv)
        return cls(
            ledger=ledger,
            center=center,
            shield=shield,
            machine=RestrictionStateMachine(ledger, center, shield),
        )


@dataclass(slots=True)
class ForegroundServices:
    device: DeviceServices
    cache: LocalCache
    client: BuyTimeClient
    balance: BalanceReconciler
    preferences: PreferenceReconciler

    def close(self) -> None:
        self.preferences.flush()
        self.balance.close()
        self.client.close()


def build_device(ledger_path: Optional[Path] = None) -> DeviceServices:
    return DeviceServices.from_store(SqliteKeyValueStore(ledger_path or get_ledger_path()))


def build_foreground(
    *,
    ledger_path: Optional[Path] = None,
    cache_path: Optional[Path] = None,
    api_settings: Optional[ApiSettings] = None,
    preference_settings: Optional[PreferenceSettings] = None,
    client: Optional[BuyTimeClient] = None,
) -> ForegroundServices:
    device = build_device(ledger_path)
    cache = LocalCache(SqliteKeyValueStore(cache_path or get_cache_path()))
    client = client or BuyTimeClient(api_settings or ApiSettings.from_env())
    return ForegroundServices(
        device=device,
        cache=cache,
        client=client,
        balance=BalanceReconciler(device.ledger, cache, client),
        preferences=PreferenceReconciler(cache, client, preference_settings),
    )
