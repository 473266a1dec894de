"""Background usage monitor that closes earned windows and enforces shields."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Optional

from .config import MonitorSettings
from .restriction import Monitoring, RestrictionStateMachine
from .shield import ActivityCenter, ActivityEventKind, ProcessShield

logger = logging.getLogger(__name__)


class UsageMonitor:
    """Samples usage at a fixed interval and feeds the activity center.

    Usage counts while any selected application has a live process. Gaps
    longer than two sample intervals (sleep, suspend) are not counted.
    """

    def __init__(
        self,
        machine: RestrictionStateMachine,
        center: ActivityCenter,
        shield: ProcessShield,
        settings: Optional[MonitorSettings] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.machine = machine
        self.center = center
        self.shield = shield
        self.settings = settings or MonitorSettings()
        self._clock = clock
        self._last_sample: Optional[datetime] = None

    def run_forever(self) -> None:
        stop_event = threading.Event()
        try:
            self._run_loop(stop_event)
        except KeyboardInterrupt:
            logger.info("Monitor interrupted.")
        finally:
            self._shutdown()

    def run_until_stopped(self, stop_event: threading.Event) -> None:
        """Run the monitor until the provided event is set."""
        try:
            self._run_loop(stop_event)
        finally:
            self._shutdown()

    def sample_once(self) -> None:
        now = self._clock()
        elapsed = self._elapsed_since_last(now)
        self._last_sample = now

        in_use = False
        if isinstance(self.machine.state, Monitoring):
            selection = self.machine.ledger.blocked_selection
            in_use = bool(self.shield.running(selection.applications))

        for event in self.center.record_usage(elapsed.total_seconds(), in_use):
            logger.debug("Activity event %s for %s.", event.kind.value, event.activity_id)
            if event.kind is ActivityEventKind.THRESHOLD_REACHED:
                self.machine.threshold_reached(event.activity_id)
            else:
                self.machine.interval_ended(event.activity_id)

        self._recover_lost_window(now)

        if self.settings.enforce_shield and self.shield.is_active:
            self.shield.enforce()

    def _elapsed_since_last(self, now: datetime) -> timedelta:
        interval = self.settings.sample_interval
        if self._last_sample is None:
            return timedelta(0)
        elapsed = now - self._last_sample
        if elapsed < timedelta(0) or elapsed > interval * 2:
            return timedelta(0)
        return elapsed

    def _recover_lost_window(self, now: datetime) -> None:
        """Keep the ledger's open window backed by a schedule.

        Schedules live in one shared entry, so a spend registered by another
        process between our read and write of that entry is overwritten.
        """
        state = self.machine.state
        if not isinstance(state, Monitoring):
            return
        schedule = state.schedule
        if now >= schedule.interval_end:
            logger.warning("Earned window %s outlived its interval; closing it.", schedule.activity_id)
            self.machine.interval_ended(schedule.activity_id)
            return
        if all(s.activity_id != schedule.activity_id for s in self.center.schedules()):
            logger.warning("Earned window %s lost its schedule; registering it again.", schedule.activity_id)
            self.center.register_schedule(schedule)

    def _run_loop(self, stop_event: threading.Event) -> None:
        logger.info("Starting usage monitor.")
        interval = self.settings.sample_interval.total_seconds()
        while not stop_event.is_set():
            try:
                self.sample_once()
            except Exception:
                logger.exception("Monitor sample failed; retrying next interval.")
            # Sleep in an interruptible manner.
            stop_event.wait(interval)

    def _shutdown(self) -> None:
        logger.info("Monitor stopped.")
