"""Conversion between focus time and reward time."""

from __future__ import annotations

from dataclasses import dataclass

from .models import FOCUS_MAX_MINUTES, FOCUS_MIN_MINUTES, FocusMode

SESSIONS_PER_DAY = 8


@dataclass(frozen=True, slots=True)
class Derivation:
    focus_minutes: float
    mode: FocusMode

    @property
    def reward_minutes(self) -> float:
        return reward_for(self.focus_minutes, self.mode)


def reward_for(focus_minutes: float, mode: FocusMode) -> float:
    return focus_minutes * mode.multiplier


def derive_focus(reward_minutes: float, mode: FocusMode) -> Derivation:
    """Back-calculate focus time for a reward, switching mode when needed.

    If the current mode cannot produce a focus value inside [15, 60], the
    mode closest to the range boundary is picked: below the range the
    largest multiplier not above ``reward / 15``, above the range the
    smallest multiplier not below ``reward / 60``. When no mode qualifies
    the mode is kept and focus is clamped.
    """
    target = reward_minutes / mode.multiplier
    selected = mode

    if target < FOCUS_MIN_MINUTES:
        ceiling = reward_minutes / FOCUS_MIN_MINUTES
        candidates = [m for m in FocusMode.ordered() if m.multiplier <= ceiling]
        if candidates:
            selected = max(candidates, key=lambda m: m.multiplier)
            target = reward_minutes / selected.multiplier
        else:
            target = FOCUS_MIN_MINUTES
    elif target > FOCUS_MAX_MINUTES:
        floor = reward_minutes / FOCUS_MAX_MINUTES
        candidates = [m for m in FocusMode.ordered() if m.multiplier >= floor]
        if candidates:
            selected = min(candidates, key=lambda m: m.multiplier)
            target = reward_minutes / selected.multiplier
        else:
            target = FOCUS_MAX_MINUTES

    return Derivation(
        focus_minutes=max(float(FOCUS_MIN_MINUTES), min(float(FOCUS_MAX_MINUTES), target)),
        mode=selected,
    )


def daily_plan(minutes_per_session: float) -> tuple[int, int]:
    """Hours and minutes for a full day of sessions."""
    total = int(minutes_per_session * SESSIONS_PER_DAY)
    return divmod(total, 60)
