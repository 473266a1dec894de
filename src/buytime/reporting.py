"""Simple reporting utilities for CLI output."""

from __future__ import annotations

from typing import Any, Dict

from .restriction import Monitoring, RestrictionState, Unrestricted
from .rewards import daily_plan
from .services import ForegroundServices


class StatusPrinter:
    """Render the ledger, preferences and restriction state in the console."""

    def __init__(self, services: ForegroundServices) -> None:
        self.services = services

    def print_status(self) -> None:
        status = build_status(self.services)
        print("BuyTime status")
        print("-" * 40)
        print(f"Available:    {format_minutes(status['available_minutes'])}")
        confirmed = status["last_confirmed_remote_value"]
        print(f"Confirmed:    {'never synced' if confirmed is None else format_minutes(confirmed)}")
        pending = "" if status["synced"] else " (not synced)"
        print(f"Pending:      {status['pending_delta']:+d} min{pending}")
        print(f"Spend unit:   {status['spend_unit_minutes']} min")
        print(f"Restriction:  {status['restriction']}")
        print()
        prefs = status["preferences"]
        print(f"Focus:        {prefs['focus_duration_minutes']} min ({prefs['focus_mode_label']})")
        print(f"Reward:       {prefs['reward_minutes']:g} min per session")
        work_h, work_m = prefs["daily_focus"]
        reward_h, reward_m = prefs["daily_reward"]
        print(f"Daily plan:   {work_h}h {work_m:02d}m focus -> {reward_h}h {reward_m:02d}m reward")


def build_status(services: ForegroundServices) -> Dict[str, Any]:
    snapshot = services.balance.snapshot()
    prefs = services.preferences
    return {
        "available_minutes": snapshot.available_minutes,
        "last_confirmed_remote_value": snapshot.last_confirmed_remote_value,
        "pending_delta": snapshot.pending_delta,
        "synced": snapshot.is_synced,
        "spend_unit_minutes": snapshot.spend_unit_minutes,
        "earned_event_active": snapshot.earned_event_active,
        "restriction": describe_state(services.device.machine.state),
        "preferences": {
            "focus_duration_minutes": int(prefs.focus_duration),
            "focus_mode": prefs.focus_mode.value,
            "focus_mode_label": prefs.focus_mode.display_name,
            "reward_minutes": prefs.reward_minutes,
            "daily_focus": daily_plan(prefs.focus_duration),
            "daily_reward": daily_plan(prefs.reward_minutes),
            "error_message": prefs.error_message,
        },
    }


def describe_state(state: RestrictionState) -> str:
    if isinstance(state, Monitoring):
        threshold = state.threshold_minutes
        until = state.schedule.interval_end.strftime("%Y-%m-%d %H:%M")
        return f"unlocked for {threshold} min of use (window ends {until})"
    if isinstance(state, Unrestricted):
        return "nothing selected"
    return "restricted"


def format_minutes(minutes: float) -> str:
    total = int(round(minutes))
    hours, mins = divmod(total, 60)
    return f"{hours}h {mins:02d}m" if hours else f"{mins} min"
