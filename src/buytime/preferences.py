"""Focus preferences with a write-through cache and debounced remote writes."""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Callable, Optional, Protocol

from .api import PreferencesRecord
from .config import PreferenceSettings
from .errors import APIError
from .ledger import LocalCache
from .models import (
    DEFAULT_FOCUS_MINUTES,
    DEFAULT_FOCUS_MODE,
    FOCUS_MAX_MINUTES,
    FOCUS_MIN_MINUTES,
    FocusMode,
    PreferenceSnapshot,
)
from .rewards import derive_focus, reward_for

logger = logging.getLogger(__name__)

SAVE_FAILED_MESSAGE = "Couldn't save preferences. Check your connection."


class PreferenceService(Protocol):
    def get_preferences(self) -> PreferencesRecord:
        ...

    def update_preferences(self, focus_duration_minutes: int, focus_mode: str) -> PreferencesRecord:
        ...


class PreferenceReconciler:
    """Keeps focus duration and mode in step with the remote service.

    Edits land in the cache at once and are pushed after a quiet period; a
    burst of edits results in a single push of the final value. A failed
    push rolls back to the last value the server confirmed.
    """

    def __init__(
        self,
        cache: LocalCache,
        service: PreferenceService,
        settings: Optional[PreferenceSettings] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.cache = cache
        self.service = service
        self.settings = settings or PreferenceSettings()
        self._clock = clock

        self.focus_duration: float = float(DEFAULT_FOCUS_MINUTES)
        self.focus_mode: FocusMode = DEFAULT_FOCUS_MODE
        self.is_loading = False
        self.error_message: Optional[str] = None

        self._confirmed_duration: float = self.focus_duration
        self._confirmed_mode: FocusMode = self.focus_mode

        self._lock = threading.Lock()
        self._push_lock = threading.Lock()
        self._debounce_timer: Optional[threading.Timer] = None
        self._dirty = False
        self._error_generation = 0

        self._load_from_cache()

    # -- state ------------------------------------------------------------

    @property
    def reward_minutes(self) -> float:
        return reward_for(self.focus_duration, self.focus_mode)

    def snapshot(self) -> PreferenceSnapshot:
        return PreferenceSnapshot(
            focus_duration_minutes=int(self.focus_duration),
            focus_mode=self.focus_mode,
            last_confirmed_focus_duration_minutes=int(self._confirmed_duration),
            last_confirmed_focus_mode=self._confirmed_mode,
            last_fetched_at=self.cache.last_fetched_at,
        )

    @property
    def is_cache_stale(self) -> bool:
        last = self.cache.last_fetched_at
        if last is None:
            return True
        return self._clock() - last > self.settings.ttl

    @property
    def is_cache_empty(self) -> bool:
        return not self.cache.has_preferences

    def _load_from_cache(self) -> None:
        duration = self.cache.focus_duration_minutes
        if duration is not None:
            self.focus_duration = float(duration)
            self._confirmed_duration = self.focus_duration
        mode = self.cache.focus_mode
        if mode is not None:
            self.focus_mode = mode
            self._confirmed_mode = mode

    # -- read path --------------------------------------------------------

    def on_appear(self) -> bool:
        """Revalidate from the remote when the cache is empty or expired.

        Returns ``True`` when a fetch succeeded.
        """
        if not (self.is_cache_empty or self.is_cache_stale):
            return False
        return self._fetch()

    def _fetch(self) -> bool:
        first_load = self.is_cache_empty
        if first_load:
            self.is_loading = True
        try:
            record = self.service.get_preferences()
        except APIError as exc:
            logger.warning("Preference fetch failed; keeping cached values: %s", exc)
            return False
        finally:
            if first_load:
                self.is_loading = False

        fetched_duration = float(
            max(FOCUS_MIN_MINUTES, min(FOCUS_MAX_MINUTES, record.focus_duration_minutes))
        )
        try:
            fetched_mode = FocusMode(record.focus_mode)
        except ValueError:
            fetched_mode = DEFAULT_FOCUS_MODE

        with self._lock:
            if fetched_duration != self.focus_duration or fetched_mode != self.focus_mode:
                self.focus_duration = fetched_duration
                self.focus_mode = fetched_mode
            self._confirmed_duration = self.focus_duration
            self._confirmed_mode = self.focus_mode
            self.cache.write_preferences(self.focus_duration, self.focus_mode)
            self.cache.stamp_fetched_at(self._clock())
        return True

    # -- write path -------------------------------------------------------

    def set_focus_duration(self, minutes: float) -> None:
        self.focus_duration = float(max(FOCUS_MIN_MINUTES, min(FOCUS_MAX_MINUTES, minutes)))
        self.on_preference_changed()

    def set_focus_mode(self, mode: FocusMode) -> None:
        self.focus_mode = mode
        self.on_preference_changed()

    def set_reward(self, reward_minutes: float) -> None:
        derivation = derive_focus(reward_minutes, self.focus_mode)
        self.focus_mode = derivation.mode
        self.focus_duration = derivation.focus_minutes
        self.on_preference_changed()

    def on_preference_changed(self) -> None:
        """Persist the current values and (re)start the debounce window."""
        with self._lock:
            self.cache.write_preferences(self.focus_duration, self.focus_mode)
            self._dirty = True
            if self._debounce_timer is not None:
                self._debounce_timer.cancel()
            timer = threading.Timer(self.settings.debounce.total_seconds(), self._push)
            timer.daemon = True
            self._debounce_timer = timer
            timer.start()

    def flush(self) -> None:
        """Push a pending edit now instead of waiting for the debounce window."""
        with self._lock:
            if self._debounce_timer is not None:
                self._debounce_timer.cancel()
                self._debounce_timer = None
        self._push()

    def wait_for_pending(self, timeout: Optional[float] = None) -> None:
        timer = self._debounce_timer
        if timer is not None:
            timer.join(timeout)

    def cancel(self) -> None:
        with self._lock:
            if self._debounce_timer is not None:
                self._debounce_timer.cancel()
                self._debounce_timer = None
            self._dirty = False

    def _push(self) -> None:
        with self._push_lock:
            with self._lock:
                if not self._dirty:
                    return
                self._dirty = False
                duration = self.focus_duration
                mode = self.focus_mode
                previous_duration = self._confirmed_duration
                previous_mode = self._confirmed_mode
            try:
                self.service.update_preferences(
                    focus_duration_minutes=int(duration),
                    focus_mode=mode.value,
                )
            except APIError as exc:
                logger.warning("Preference save failed; rolling back: %s", exc)
                with self._lock:
                    self.focus_duration = previous_duration
                    self.focus_mode = previous_mode
                    self.cache.write_preferences(previous_duration, previous_mode)
                self._show_error(SAVE_FAILED_MESSAGE)
                return

            with self._lock:
                self._confirmed_duration = duration
                self._confirmed_mode = mode
                self.error_message = None
            logger.debug("Preferences saved: %d min, %s.", int(duration), mode.value)

    def _show_error(self, message: str) -> None:
        with self._lock:
            self._error_generation += 1
            generation = self._error_generation
            self.error_message = message
        timer = threading.Timer(
            self.settings.error_display.total_seconds(),
            self._clear_error,
            args=(generation,),
        )
        timer.daemon = True
        timer.start()

    def _clear_error(self, generation: int) -> None:
        with self._lock:
            if generation == self._error_generation:
                self.error_message = None
