"""Desktop implementation of the scheduling and shielding capabilities.

``ActivityCenter`` keeps registered usage windows in the shared store and
turns usage samples into threshold and interval-end callbacks.
``ProcessShield`` records which applications are shielded and terminates
matching processes when enforced.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Iterable, Optional, Protocol

import psutil

from .db import KeyValueStore
from .models import MonitoringSchedule, RestrictionSelection

logger = logging.getLogger(__name__)

SCHEDULES = "schedules"
SHIELDED_APPLICATIONS = "shielded_applications"


class ScheduleBackend(Protocol):
    def register_schedule(self, schedule: MonitoringSchedule) -> None:
        ...

    def cancel_schedule(self, activity_id: str) -> None:
        ...


class ShieldBackend(Protocol):
    def apply_restriction(self, selection: RestrictionSelection) -> None:
        ...

    def clear_restriction(self) -> None:
        ...


class ScheduleError(Exception):
    """Raised when a usage window cannot be registered."""


class ActivityEventKind(str, Enum):
    THRESHOLD_REACHED = "threshold_reached"
    INTERVAL_ENDED = "interval_ended"


@dataclass(frozen=True, slots=True)
class ActivityEvent:
    kind: ActivityEventKind
    activity_id: str


class ActivityCenter:
    """Usage windows persisted in the shared store."""

    def __init__(
        self,
        kv: KeyValueStore,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.kv = kv
        self._clock = clock

    def register_schedule(self, schedule: MonitoringSchedule) -> None:
        if schedule.interval_end <= schedule.interval_start:
            raise ScheduleError(
                f"Schedule {schedule.activity_id} ends before it starts."
            )
        if schedule.threshold_minutes is not None and schedule.threshold_minutes <= 0:
            raise ScheduleError("threshold_minutes must be positive")
        entries = self._entries()
        entries[schedule.activity_id] = {
            "schedule": schedule.to_dict(),
            "usage_seconds": 0.0,
            "threshold_fired": False,
        }
        self._save(entries)
        logger.info(
            "Registered schedule %s until %s (threshold=%s min, repeats=%s).",
            schedule.activity_id,
            schedule.interval_end.isoformat(timespec="seconds"),
            schedule.threshold_minutes,
            schedule.repeats,
        )

    def cancel_schedule(self, activity_id: str) -> None:
        entries = self._entries()
        if entries.pop(activity_id, None) is not None:
            self._save(entries)
            logger.info("Cancelled schedule %s.", activity_id)

    def schedules(self) -> list[MonitoringSchedule]:
        return [MonitoringSchedule.from_dict(entry["schedule"]) for entry in self._entries().values()]

    def usage_seconds(self, activity_id: str) -> float:
        entry = self._entries().get(activity_id)
        return float(entry["usage_seconds"]) if entry else 0.0

    def record_usage(self, elapsed_seconds: float, in_use: bool) -> list[ActivityEvent]:
        """Account one monitor sample and return the callbacks it triggers."""
        now = self._clock()
        entries = self._entries()
        events: list[ActivityEvent] = []

        for activity_id, entry in list(entries.items()):
            schedule = MonitoringSchedule.from_dict(entry["schedule"])

            if now >= schedule.interval_end:
                events.append(ActivityEvent(ActivityEventKind.INTERVAL_ENDED, activity_id))
                if schedule.repeats:
                    while schedule.interval_end <= now:
                        schedule = schedule.rolled_forward()
                    entries[activity_id] = {
                        "schedule": schedule.to_dict(),
                        "usage_seconds": 0.0,
                        "threshold_fired": False,
                    }
                else:
                    del entries[activity_id]
                continue

            if now < schedule.interval_start or schedule.threshold_minutes is None:
                continue
            if in_use:
                entry["usage_seconds"] = float(entry["usage_seconds"]) + elapsed_seconds
            if (
                not entry["threshold_fired"]
                and entry["usage_seconds"] >= schedule.threshold_minutes * 60
            ):
                entry["threshold_fired"] = True
                events.append(ActivityEvent(ActivityEventKind.THRESHOLD_REACHED, activity_id))

        self._save(entries)
        return events

    def _entries(self) -> dict[str, dict[str, Any]]:
        return dict(self.kv.get(SCHEDULES, {}) or {})

    def _save(self, entries: dict[str, dict[str, Any]]) -> None:
        self.kv.set(SCHEDULES, entries)


class ProcessShield:
    """Blocks applications by name while a restriction is applied.

    Categories and web domains are kept in the selection but cannot be
    enforced at the process level; only application names are matched.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        process_iter: Callable[..., Iterable[psutil.Process]] = psutil.process_iter,
    ) -> None:
        self.kv = kv
        self._process_iter = process_iter

    @property
    def shielded_applications(self) -> frozenset[str]:
        return frozenset(self.kv.get(SHIELDED_APPLICATIONS, []) or [])

    @property
    def is_active(self) -> bool:
        return bool(self.shielded_applications)

    def apply_restriction(self, selection: RestrictionSelection) -> None:
        names = sorted(name.lower() for name in selection.applications)
        self.kv.set(SHIELDED_APPLICATIONS, names)
        if selection.categories or selection.web_domains:
            logger.debug(
                "Ignoring %d categories and %d web domains; not enforceable per process.",
                len(selection.categories),
                len(selection.web_domains),
            )
        logger.info("Shield applied to %d applications.", len(names))

    def clear_restriction(self) -> None:
        self.kv.set(SHIELDED_APPLICATIONS, [])
        logger.info("Shield removed.")

    def running(self, names: Iterable[str]) -> set[str]:
        """Return which of ``names`` currently have a live process."""
        wanted = {name.lower() for name in names}
        if not wanted:
            return set()
        found: set[str] = set()
        for proc in self._process_iter(["name"]):
            name = _process_name(proc)
            if name in wanted:
                found.add(name)
        return found

    def enforce(self) -> int:
        """Terminate processes of shielded applications. Returns how many were hit."""
        shielded = self.shielded_applications
        if not shielded:
            return 0
        terminated = 0
        for proc in self._process_iter(["name"]):
            name = _process_name(proc)
            if name not in shielded:
                continue
            try:
                proc.terminate()
                terminated += 1
                logger.info("Terminated shielded application %s (pid %s).", name, proc.pid)
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                logger.debug("Could not terminate %s.", name, exc_info=True)
        return terminated


def _process_name(proc: psutil.Process) -> Optional[str]:
    try:
        info = getattr(proc, "info", None)
        name = info.get("name") if info else proc.name()
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return None
    return name.lower() if name else None
