"""Tests for the focus/reward derivation."""

import pytest

from buytime.models import FocusMode
from buytime.rewards import daily_plan, derive_focus, reward_for


class TestForward:
    @pytest.mark.parametrize(
        "mode,expected",
        [
            (FocusMode.HARD, 10.0),
            (FocusMode.MEDIUM, 20.0),
            (FocusMode.EASY, 30.0),
            (FocusMode.FUN, 40.0),
        ],
    )
    def test_reward_is_focus_times_multiplier(self, mode, expected):
        assert reward_for(40, mode) == pytest.approx(expected)

    def test_modes_are_ordered_by_multiplier(self):
        multipliers = [mode.multiplier for mode in FocusMode.ordered()]
        assert multipliers == sorted(multipliers)


class TestReverse:
    @pytest.mark.parametrize("mode", list(FocusMode))
    def test_round_trip_inside_range(self, mode):
        for focus in range(15, 61):
            derivation = derive_focus(reward_for(focus, mode), mode)
            assert derivation.mode is mode
            assert derivation.focus_minutes == pytest.approx(focus)

    def test_low_reward_switches_to_largest_fitting_multiplier(self):
        derivation = derive_focus(10, FocusMode.FUN)
        assert derivation.mode is FocusMode.MEDIUM
        assert derivation.focus_minutes == pytest.approx(20)

    def test_reward_four_from_fun_switches_to_hard(self):
        """4 / 15 is about 0.267, so hard (0.25) is the only mode that fits."""
        derivation = derive_focus(4, FocusMode.FUN)
        assert derivation.mode is FocusMode.HARD
        assert derivation.focus_minutes == pytest.approx(16)

    def test_reward_below_every_mode_clamps_and_keeps_mode(self):
        derivation = derive_focus(3, FocusMode.FUN)
        assert derivation.mode is FocusMode.FUN
        assert derivation.focus_minutes == 15

    def test_high_reward_switches_to_smallest_fitting_multiplier(self):
        derivation = derive_focus(40, FocusMode.MEDIUM)
        assert derivation.mode is FocusMode.EASY
        assert derivation.focus_minutes == pytest.approx(40 / 0.75)

    def test_high_reward_from_hard_jumps_to_fun(self):
        derivation = derive_focus(50, FocusMode.HARD)
        assert derivation.mode is FocusMode.FUN
        assert derivation.focus_minutes == pytest.approx(50)

    def test_reward_above_every_mode_clamps_and_keeps_mode(self):
        derivation = derive_focus(70, FocusMode.HARD)
        assert derivation.mode is FocusMode.HARD
        assert derivation.focus_minutes == 60

    def test_range_boundaries_do_not_switch(self):
        assert derive_focus(30, FocusMode.MEDIUM).mode is FocusMode.MEDIUM
        assert derive_focus(15, FocusMode.FUN).mode is FocusMode.FUN

    def test_derivation_exposes_reward(self):
        assert derive_focus(12, FocusMode.MEDIUM).reward_minutes == pytest.approx(12)


class TestDailyPlan:
    def test_eight_sessions(self):
        assert daily_plan(30) == (4, 0)
        assert daily_plan(22.5) == (3, 0)
        assert daily_plan(50) == (6, 40)
