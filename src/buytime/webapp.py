"""FastAPI application that exposes a local dashboard API for BuyTime."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from .config import MonitorSettings
from .errors import InsufficientBalanceError
from .models import FOCUS_MAX_MINUTES, FOCUS_MIN_MINUTES, FocusMode, RestrictionSelection
from .monitor import UsageMonitor
from .paths import get_cache_path, get_ledger_path
from .reporting import build_status, describe_state
from .services import DeviceServices, ForegroundServices, build_foreground
from .shield import ScheduleError

logger = logging.getLogger(__name__)


class MonitorRunner:
    """Runs one usage monitor on a daemon thread while the app is up."""

    def __init__(self, device: DeviceServices, settings: MonitorSettings) -> None:
        self._monitor = UsageMonitor(device.machine, device.center, device.shield, settings)
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self.is_running():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._monitor.run_until_stopped,
            args=(self._stop_event,),
            name="usage-monitor",
            daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        thread, self._thread = self._thread, None
        if thread is None:
            return
        self._stop_event.set()
        thread.join(timeout=10)

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()


class EarnPayload(BaseModel):
    minutes: int = Field(gt=0)

    model_config = ConfigDict(extra="forbid")


class SpendPayload(BaseModel):
    minutes: Optional[int] = Field(default=None, gt=0)

    model_config = ConfigDict(extra="forbid")


class SelectionPayload(BaseModel):
    applications: List[str] = []
    categories: List[str] = []
    web_domains: List[str] = []

    model_config = ConfigDict(extra="forbid")


class PreferenceUpdate(BaseModel):
    focus_duration_minutes: Optional[float] = Field(
        default=None, ge=FOCUS_MIN_MINUTES, le=FOCUS_MAX_MINUTES
    )
    focus_mode: Optional[FocusMode] = None

    model_config = ConfigDict(extra="forbid")


class RewardPayload(BaseModel):
    reward_minutes: float = Field(ge=0)

    model_config = ConfigDict(extra="forbid")


def create_app(
    *,
    ledger_path: Optional[Path] = None,
    cache_path: Optional[Path] = None,
    settings: Optional[MonitorSettings] = None,
    services: Optional[ForegroundServices] = None,
    run_monitor: bool = True,
) -> FastAPI:
    """Instantiate the FastAPI application."""
    resolved_services = services or build_foreground(
        ledger_path=Path(ledger_path or get_ledger_path()),
        cache_path=Path(cache_path or get_cache_path()),
    )
    resolved_settings = settings or MonitorSettings()
    runner = MonitorRunner(resolved_services.device, resolved_settings)

    app = FastAPI(title="BuyTime", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.services = resolved_services
    app.state.monitor_runner = runner

    @app.on_event("startup")
    async def _startup() -> None:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )
        if run_monitor:
            runner.start()
            logger.info("Usage monitor running every %.1fs.", resolved_settings.sample_interval.total_seconds())
        resolved_services.balance.on_appear()

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        runner.stop()
        resolved_services.close()

    @app.get("/api/status")
    def status(request: Request) -> Dict[str, Any]:
        payload = build_status(request.app.state.services)
        payload["monitor_running"] = request.app.state.monitor_runner.is_running()
        payload["sample_seconds"] = resolved_settings.sample_interval.total_seconds()
        return payload

    @app.post("/api/foreground")
    def foreground(request: Request) -> Dict[str, Any]:
        services: ForegroundServices = request.app.state.services
        future = services.balance.on_foreground()
        fetched = services.preferences.on_appear()
        return {
            "balance_sync_started": future is not None,
            "preferences_fetched": fetched,
            "available_minutes": services.balance.available_minutes,
        }

    @app.post("/api/earn")
    def earn(payload: EarnPayload, request: Request) -> Dict[str, Any]:
        services: ForegroundServices = request.app.state.services
        services.balance.earn(payload.minutes)
        return {
            "available_minutes": services.balance.available_minutes,
        }

    @app.post("/api/refresh")
    def refresh(request: Request) -> Dict[str, Any]:
        result = request.app.state.services.balance.refresh()
        return {
            "outcome": result.outcome.value,
            "available_minutes": result.available_minutes,
            "pending_delta": result.delta,
            "error": str(result.error) if result.error else None,
        }

    @app.post("/api/spend")
    def spend(payload: SpendPayload, request: Request) -> Dict[str, Any]:
        device: DeviceServices = request.app.state.services.device
        try:
            state = device.machine.spend(payload.minutes)
        except InsufficientBalanceError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        except ScheduleError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        except OSError as exc:
            raise HTTPException(status_code=503, detail=f"Shield unavailable: {exc}") from exc
        return {
            "restriction": describe_state(state),
            "threshold_minutes": state.threshold_minutes,
            "available_minutes": device.ledger.available_minutes,
        }

    @app.put("/api/selection")
    def update_selection(payload: SelectionPayload, request: Request) -> Dict[str, Any]:
        device: DeviceServices = request.app.state.services.device
        selection = RestrictionSelection(
            applications=frozenset(name.strip() for name in payload.applications if name.strip()),
            categories=frozenset(payload.categories),
            web_domains=frozenset(payload.web_domains),
        )
        state = device.machine.setup(selection)
        return {"selection": selection.to_dict(), "restriction": describe_state(state)}

    @app.get("/api/preferences")
    def get_preferences(request: Request) -> Dict[str, Any]:
        prefs = request.app.state.services.preferences
        prefs.on_appear()
        return _preferences_payload(prefs)

    @app.patch("/api/preferences")
    def update_preferences(payload: PreferenceUpdate, request: Request) -> Dict[str, Any]:
        prefs = request.app.state.services.preferences
        updates = payload.model_dump(exclude_unset=True, exclude_none=True)
        if not updates:
            raise HTTPException(status_code=400, detail="No preference fields supplied")
        if "focus_mode" in updates:
            prefs.focus_mode = updates["focus_mode"]
        if "focus_duration_minutes" in updates:
            prefs.focus_duration = float(updates["focus_duration_minutes"])
        prefs.on_preference_changed()
        return _preferences_payload(prefs)

    @app.post("/api/preferences/reward")
    def update_reward(payload: RewardPayload, request: Request) -> Dict[str, Any]:
        prefs = request.app.state.services.preferences
        prefs.set_reward(payload.reward_minutes)
        return _preferences_payload(prefs)

    return app


def _preferences_payload(prefs: Any) -> Dict[str, Any]:
    return {
        "focus_duration_minutes": int(prefs.focus_duration),
        "focus_mode": prefs.focus_mode.value,
        "reward_minutes": prefs.reward_minutes,
        "is_loading": prefs.is_loading,
        "error_message": prefs.error_message,
    }
