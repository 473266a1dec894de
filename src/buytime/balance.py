"""Delta-based reconciliation of the local ledger with the remote balance.

The shared ledger is the source of truth on the device; the remote service is
a mirror. ``pending_delta = available_minutes - last_confirmed_remote_value``
captures local earn/spend activity that the remote has not seen yet. A sync
re-reads the remote value and applies the delta on top of it, so earns and
spends made on two devices add up instead of the last writer winning.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol

from .api import BalanceRecord
from .errors import APIError
from .ledger import LedgerStore, LocalCache
from .models import LedgerSnapshot

logger = logging.getLogger(__name__)


class BalanceService(Protocol):
    def get_balance(self) -> BalanceRecord:
        ...

    def update_balance(self, available_minutes: int) -> BalanceRecord:
        ...


class SyncOutcome(str, Enum):
    ACCEPTED_REMOTE = "accepted_remote"
    PUSHED_DELTA = "pushed_delta"
    FAILED = "failed"


@dataclass(slots=True)
class SyncResult:
    outcome: SyncOutcome
    available_minutes: int
    delta: int = 0
    error: Optional[APIError] = None

    @property
    def ok(self) -> bool:
        return self.outcome is not SyncOutcome.FAILED


SyncListener = Callable[[SyncResult], None]


class BalanceReconciler:
    """Foreground-side view of the balance that keeps the remote in step."""

    def __init__(
        self,
        ledger: LedgerStore,
        cache: LocalCache,
        service: BalanceService,
    ) -> None:
        self.ledger = ledger
        self.cache = cache
        self.service = service
        self.available_minutes = ledger.available_minutes
        self.is_refreshing = False
        self._sync_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="balance-sync")
        self._listeners: list[SyncListener] = []

    def snapshot(self) -> LedgerSnapshot:
        snapshot = self.ledger.get()
        snapshot.last_confirmed_remote_value = self.cache.last_confirmed_remote_value
        return snapshot

    @property
    def pending_delta(self) -> int:
        return self.snapshot().pending_delta

    def add_listener(self, listener: SyncListener) -> None:
        self._listeners.append(listener)

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    # -- lifecycle hooks --------------------------------------------------

    def on_appear(self) -> Optional[Future[SyncResult]]:
        """Seed the confirmed value on first launch; no-op once synced."""
        if self.cache.last_confirmed_remote_value is not None:
            return None
        return self._submit()

    def on_foreground(self) -> Optional[Future[SyncResult]]:
        """Pick up writes made by other processes, then sync if anything is pending."""
        self.available_minutes = self.ledger.available_minutes
        if self.cache.last_confirmed_remote_value is None:
            return None
        if self.pending_delta == 0:
            return None
        return self._submit()

    def refresh(self) -> SyncResult:
        self.is_refreshing = True
        try:
            return self._perform_sync()
        finally:
            self.is_refreshing = False

    # -- mutations --------------------------------------------------------

    def earn(self, amount: int) -> Future[SyncResult]:
        """Credit minutes locally right away and sync in the background."""
        if amount <= 0:
            raise ValueError("amount must be positive")
        self.available_minutes = self.ledger.add_minutes(amount)
        logger.info("Earned %d min; balance now %d.", amount, self.available_minutes)
        return self._submit()

    def debug_set_minutes(self, amount: int) -> None:
        self.ledger.available_minutes = amount
        self.available_minutes = self.ledger.available_minutes
        self.cache.last_confirmed_remote_value = None

    # -- core sync --------------------------------------------------------

    def _submit(self) -> Future[SyncResult]:
        return self._executor.submit(self._perform_sync)

    def _perform_sync(self) -> SyncResult:
        with self._sync_lock:
            result = self._sync_locked()
        self.available_minutes = self.ledger.available_minutes
        for listener in list(self._listeners):
            listener(result)
        return result

    def _sync_locked(self) -> SyncResult:
        try:
            remote = self.service.get_balance()
            snapshot = self.snapshot()
            local = snapshot.available_minutes
            delta = snapshot.pending_delta
            if delta != 0:
                target = max(0, remote.available_minutes + delta)
                confirmed = self.service.update_balance(target).available_minutes
                self._confirm(confirmed, local)
                logger.info(
                    "Pushed balance delta %+d onto remote %d; confirmed %d.",
                    delta,
                    remote.available_minutes,
                    confirmed,
                )
                return SyncResult(SyncOutcome.PUSHED_DELTA, confirmed, delta)

            self._confirm(remote.available_minutes, local)
            logger.debug("Accepted remote balance %d.", remote.available_minutes)
            return SyncResult(SyncOutcome.ACCEPTED_REMOTE, remote.available_minutes)
        except APIError as exc:
            # The delta stays pending; the next foreground or refresh retries.
            logger.warning("Balance sync failed: %s", exc)
            return SyncResult(
                SyncOutcome.FAILED,
                self.ledger.available_minutes,
                self.pending_delta,
                error=exc,
            )

    def _confirm(self, confirmed: int, local_at_delta: int) -> None:
        # Earns and spends that landed while the request was in flight stay pending.
        drift = self.ledger.available_minutes - local_at_delta
        self.cache.last_confirmed_remote_value = confirmed
        self.ledger.available_minutes = max(0, confirmed + drift)
        if drift:
            logger.info("Keeping %+d min recorded during the sync as pending.", drift)
