"""
Tests for the preference cache and its debounced write-back.

Tests cover:
- Loading from cache
- TTL-based revalidation and fetch stamping
- Debounce coalescing of edit bursts
- Rollback to the last confirmed snapshot on push failure
- Transient error message
"""

import time
from datetime import timedelta

import pytest

from buytime.config import PreferenceSettings
from buytime.models import FocusMode
from buytime.preferences import SAVE_FAILED_MESSAGE, PreferenceReconciler

FAST = PreferenceSettings(
    debounce=timedelta(milliseconds=20),
    error_display=timedelta(milliseconds=50),
    ttl=timedelta(hours=24),
)


@pytest.fixture
def prefs(cache, preference_service, clock):
    reconciler = PreferenceReconciler(cache, preference_service, FAST, clock=clock)
    yield reconciler
    reconciler.cancel()


class TestCacheLoad:
    def test_defaults_without_cache(self, prefs):
        assert prefs.focus_duration == 30.0
        assert prefs.focus_mode is FocusMode.EASY
        assert prefs.is_cache_empty

    def test_loads_cached_values_as_confirmed(self, cache, preference_service, clock):
        cache.write_preferences(45, FocusMode.HARD)
        reconciler = PreferenceReconciler(cache, preference_service, FAST, clock=clock)

        snapshot = reconciler.snapshot()
        assert snapshot.focus_duration_minutes == 45
        assert snapshot.focus_mode is FocusMode.HARD
        assert snapshot.last_confirmed_focus_duration_minutes == 45
        assert snapshot.last_confirmed_focus_mode is FocusMode.HARD


class TestRevalidation:
    def test_empty_cache_fetches(self, prefs, cache, preference_service, clock):
        preference_service.focus_duration_minutes = 50
        preference_service.focus_mode = "fun"

        assert prefs.on_appear() is True
        assert prefs.focus_duration == 50.0
        assert prefs.focus_mode is FocusMode.FUN
        assert cache.focus_duration_minutes == 50
        assert cache.last_fetched_at == clock.now
        assert prefs.is_loading is False

    def test_fresh_cache_skips_fetch(self, prefs, preference_service, clock):
        prefs.on_appear()
        clock.advance(hours=23)

        assert prefs.on_appear() is False
        assert preference_service.gets == 1

    def test_stale_cache_fetches_again(self, prefs, cache, preference_service, clock):
        prefs.on_appear()
        clock.advance(hours=25)

        assert prefs.on_appear() is True
        assert preference_service.gets == 2
        assert cache.last_fetched_at == clock.now

    def test_unchanged_value_still_stamps(self, prefs, cache, preference_service, clock):
        prefs.on_appear()
        first_stamp = cache.last_fetched_at
        clock.advance(days=2)

        prefs.on_appear()

        assert prefs.focus_duration == 30.0
        assert cache.last_fetched_at > first_stamp

    def test_fetch_failure_keeps_cache(self, cache, preference_service, clock):
        cache.write_preferences(40, FocusMode.MEDIUM)
        preference_service.fail_get = True
        reconciler = PreferenceReconciler(cache, preference_service, FAST, clock=clock)

        assert reconciler.on_appear() is False
        assert reconciler.focus_duration == 40.0
        assert cache.last_fetched_at is None

    def test_unknown_remote_mode_falls_back_to_easy(self, prefs, preference_service):
        preference_service.focus_mode = "extreme"
        prefs.on_appear()
        assert prefs.focus_mode is FocusMode.EASY

    def test_out_of_range_remote_duration_is_clamped(self, prefs, preference_service):
        preference_service.focus_duration_minutes = 240
        prefs.on_appear()
        assert prefs.focus_duration == 60.0


class TestDebouncedWrite:
    def test_change_is_cached_immediately(self, prefs, cache, preference_service):
        prefs.set_focus_duration(45)
        assert cache.focus_duration_minutes == 45
        assert preference_service.updates == []

    def test_burst_pushes_only_final_value(self, prefs, preference_service):
        prefs.set_focus_duration(20)
        prefs.set_focus_duration(25)
        prefs.set_focus_mode(FocusMode.HARD)
        prefs.set_focus_duration(40)

        prefs.wait_for_pending(timeout=2)

        assert preference_service.updates == [(40, "hard")]
        assert prefs.snapshot().last_confirmed_focus_duration_minutes == 40

    def test_flush_pushes_without_waiting(self, cache, preference_service, clock):
        slow = PreferenceSettings(debounce=timedelta(seconds=30))
        reconciler = PreferenceReconciler(cache, preference_service, slow, clock=clock)
        reconciler.set_focus_duration(55)

        reconciler.flush()

        assert preference_service.updates == [(55, "easy")]
        reconciler.flush()
        assert preference_service.updates == [(55, "easy")]

    def test_set_reward_derives_focus_and_mode(self, prefs, preference_service):
        prefs.set_reward(10)
        prefs.wait_for_pending(timeout=2)

        assert prefs.focus_mode is FocusMode.MEDIUM
        assert prefs.focus_duration == 20.0
        assert preference_service.updates == [(20, "medium")]

    def test_focus_setter_clamps(self, prefs):
        prefs.set_focus_duration(5)
        assert prefs.focus_duration == 15.0
        prefs.set_focus_duration(90)
        assert prefs.focus_duration == 60.0


class TestRollback:
    def test_failed_push_restores_confirmed_values(self, prefs, cache, preference_service):
        preference_service.fail_update = True
        prefs.set_focus_duration(45)
        prefs.wait_for_pending(timeout=2)

        assert prefs.focus_duration == 30.0
        assert prefs.focus_mode is FocusMode.EASY
        assert cache.focus_duration_minutes == 30
        assert prefs.error_message == SAVE_FAILED_MESSAGE

    def test_rolls_back_to_last_confirmed_not_previous_edit(
        self, prefs, cache, preference_service
    ):
        prefs.set_focus_duration(45)
        prefs.wait_for_pending(timeout=2)

        preference_service.fail_update = True
        prefs.set_focus_duration(50)
        prefs.set_focus_duration(55)
        prefs.wait_for_pending(timeout=2)

        assert prefs.focus_duration == 45.0
        assert cache.focus_duration_minutes == 45

    def test_error_message_clears_itself(self, prefs, preference_service):
        preference_service.fail_update = True
        prefs.set_focus_duration(45)
        prefs.wait_for_pending(timeout=2)
        assert prefs.error_message is not None

        deadline = time.monotonic() + 2
        while prefs.error_message is not None and time.monotonic() < deadline:
            time.sleep(0.01)

        assert prefs.error_message is None

    def test_successful_push_clears_error(self, prefs, preference_service):
        preference_service.fail_update = True
        prefs.set_focus_duration(45)
        prefs.wait_for_pending(timeout=2)

        preference_service.fail_update = False
        prefs.set_focus_duration(35)
        prefs.wait_for_pending(timeout=2)

        assert prefs.error_message is None
        assert preference_service.updates == [(35, "easy")]
