"""Restriction state machine shared by the spend overlay and the usage monitor.

Both callers run in their own process. The machine holds no state of its
own: the current state is read from the shared ledger on every call and
each transition writes ``active_schedule`` and ``earned_event_active``
together through :meth:`RestrictionStateMachine._enter`.

Shield failures while restricting are logged and the state still becomes
``Restricted`` (fail-safe-to-restrictive): the ledger never claims an open
window that nothing will close.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional, Union

from .errors import InsufficientBalanceError
from .ledger import LedgerStore
from .models import MonitoringSchedule, RestrictionSelection
from .shield import ScheduleBackend, ShieldBackend

logger = logging.getLogger(__name__)

BLOCKER_ACTIVITY = "buytime.blocker"
EARNED_TIME_ACTIVITY = "buytime.earned_time"


@dataclass(frozen=True, slots=True)
class Unrestricted:
    """Nothing selected, so nothing to shield."""


@dataclass(frozen=True, slots=True)
class Restricted:
    """Shields applied, no earned window open."""


@dataclass(frozen=True, slots=True)
class Monitoring:
    """Shields lifted while an earned window runs."""

    schedule: MonitoringSchedule

    @property
    def threshold_minutes(self) -> Optional[int]:
        return self.schedule.threshold_minutes


RestrictionState = Union[Unrestricted, Restricted, Monitoring]


class RestrictionStateMachine:
    def __init__(
        self,
        ledger: LedgerStore,
        scheduler: ScheduleBackend,
        shield: ShieldBackend,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.ledger = ledger
        self.scheduler = scheduler
        self.shield = shield
        self._clock = clock

    @property
    def state(self) -> RestrictionState:
        schedule = self.ledger.active_schedule
        if self.ledger.earned_event_active and schedule is not None:
            return Monitoring(schedule)
        if self.ledger.blocked_selection.is_empty:
            return Unrestricted()
        return Restricted()

    # -- settings surface -------------------------------------------------

    def setup(self, selection: RestrictionSelection) -> RestrictionState:
        """Store a new selection and shield it (or lift everything if empty)."""
        self.ledger.blocked_selection = selection
        if selection.is_empty:
            self.scheduler.cancel_schedule(BLOCKER_ACTIVITY)
            self.shield.clear_restriction()
            return self._enter(Unrestricted())

        if isinstance(self.state, Monitoring):
            # The open window keeps running; its end re-applies the new selection.
            logger.info("Selection updated during an earned window.")
            return self.state

        self.shield.apply_restriction(selection)
        self.scheduler.register_schedule(self._daily_blocker_schedule())
        return self._enter(Restricted())

    # -- overlay ----------------------------------------------------------

    def spend(self, amount: Optional[int] = None) -> Monitoring:
        """Trade one spend unit for an unshielded window of ``amount`` usage minutes."""
        current = self.state
        if isinstance(current, Monitoring):
            logger.info("Spend ignored; an earned window is already open.")
            return current

        unit = self.ledger.spend_unit_minutes
        threshold = amount if amount is not None else unit
        if threshold <= 0:
            raise ValueError("amount must be positive")
        available = self.ledger.available_minutes
        if available < unit:
            logger.info("Spend refused: %d min available, %d required.", available, unit)
            raise InsufficientBalanceError(available, unit)

        now = self._clock()
        schedule = MonitoringSchedule(
            activity_id=EARNED_TIME_ACTIVITY,
            interval_start=now,
            interval_end=_next_midnight(now),
            threshold_minutes=threshold,
            repeats=False,
        )
        self.scheduler.register_schedule(schedule)
        try:
            self.shield.clear_restriction()
        except Exception:
            self.scheduler.cancel_schedule(schedule.activity_id)
            raise

        remaining = self.ledger.add_minutes(-unit)
        state = self._enter(Monitoring(schedule))
        logger.info(
            "Spent %d min for a %d min window; %d min left.", unit, threshold, remaining
        )
        return state

    # -- monitor callbacks ------------------------------------------------

    def threshold_reached(self, activity_id: str) -> RestrictionState:
        return self._close_window(activity_id, "threshold reached")

    def interval_ended(self, activity_id: str) -> RestrictionState:
        if activity_id == BLOCKER_ACTIVITY:
            current = self.state
            if isinstance(current, Restricted):
                self._reapply_shield()
            return current
        return self._close_window(activity_id, "interval ended")

    def _close_window(self, activity_id: str, reason: str) -> RestrictionState:
        current = self.state
        if not isinstance(current, Monitoring) or current.schedule.activity_id != activity_id:
            logger.debug("Ignoring stale callback for %s (%s).", activity_id, reason)
            if activity_id != BLOCKER_ACTIVITY:
                self.scheduler.cancel_schedule(activity_id)
            return current

        logger.info("Earned window %s closed: %s.", activity_id, reason)
        self.scheduler.cancel_schedule(activity_id)
        self._reapply_shield()
        if self.ledger.blocked_selection.is_empty:
            return self._enter(Unrestricted())
        return self._enter(Restricted())

    # -- helpers ----------------------------------------------------------

    def _reapply_shield(self) -> None:
        selection = self.ledger.blocked_selection
        try:
            self.shield.clear_restriction()
            if not selection.is_empty:
                self.shield.apply_restriction(selection)
        except Exception:
            logger.exception("Failed to re-apply shield; recording restricted state anyway.")

    def _enter(self, state: RestrictionState) -> RestrictionState:
        if isinstance(state, Monitoring):
            self.ledger.active_schedule = state.schedule
            self.ledger.earned_event_active = True
        else:
            self.ledger.earned_event_active = False
            self.ledger.active_schedule = None
        return state

    def _daily_blocker_schedule(self) -> MonitoringSchedule:
        midnight = self._clock().replace(hour=0, minute=0, second=0, microsecond=0)
        return MonitoringSchedule(
            activity_id=BLOCKER_ACTIVITY,
            interval_start=midnight,
            interval_end=midnight + timedelta(days=1),
            repeats=True,
        )


def _next_midnight(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0) + timedelta(days=1)
