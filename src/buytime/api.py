"""HTTP client for the remote BuyTime balance and preference service."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional, Type, TypeVar

import httpx
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from .config import ApiSettings
from .errors import (
    BadRequest,
    DecodingError,
    NetworkError,
    NotFound,
    ServerError,
    Unauthorized,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class TodayStats(BaseModel):
    earned_minutes: int = Field(0, alias="earnedMinutes")
    spent_minutes: int = Field(0, alias="spentMinutes")
    sessions_completed: int = Field(0, alias="sessionsCompleted")
    sessions_failed: int = Field(0, alias="sessionsFailed")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class BalanceRecord(BaseModel):
    available_minutes: int = Field(alias="availableMinutes")
    current_streak_days: int = Field(
        0, validation_alias=AliasChoices("currentStreakDays", "streakDays")
    )
    last_session_date: Optional[str] = Field(None, alias="lastSessionDate")
    updated_at: Optional[str] = Field(None, alias="updatedAt")
    today: Optional[TodayStats] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class PreferencesRecord(BaseModel):
    focus_duration_minutes: int = Field(alias="focusDurationMinutes")
    focus_mode: str = Field(alias="focusMode")
    updated_at: Optional[str] = Field(None, alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class UserProfile(BaseModel):
    id: str
    email: Optional[str] = None
    display_name: Optional[str] = Field(None, alias="displayName")
    subscription_tier: Optional[str] = Field(None, alias="subscriptionTier")
    subscription_status: Optional[str] = Field(None, alias="subscriptionStatus")
    balance: Optional[BalanceRecord] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class BuyTimeClient:
    """Thin wrapper around ``httpx.Client`` that unwraps the response envelope.

    Every payload arrives as ``{"success": bool, "data": ..., "error": ...}``.
    HTTP status codes are mapped onto :mod:`buytime.errors` independently of
    the envelope.
    """

    def __init__(
        self,
        settings: Optional[ApiSettings] = None,
        *,
        transport: Optional[httpx.BaseTransport] = None,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
    ) -> None:
        self.settings = settings or ApiSettings.from_env()
        self._token_provider = token_provider or (lambda: self.settings.token)
        self._client = httpx.Client(
            base_url=self.settings.base_url,
            timeout=self.settings.timeout.total_seconds(),
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "BuyTimeClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # -- user -------------------------------------------------------------

    def get_user(self) -> UserProfile:
        return self._request("GET", "/api/users/me", UserProfile)

    def wait_for_user_creation(
        self,
        max_retries: int = 5,
        delay_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> UserProfile:
        """Poll until the account has been provisioned server-side."""
        for attempt in range(max_retries):
            try:
                return self.get_user()
            except NotFound:
                logger.debug("User not provisioned yet (attempt %d/%d).", attempt + 1, max_retries)
                if attempt < max_retries - 1:
                    sleep(delay_seconds)
        raise NotFound("User was not provisioned in time.")

    # -- balance ----------------------------------------------------------

    def get_balance(self) -> BalanceRecord:
        return self._request("GET", "/api/balance", BalanceRecord)

    def update_balance(self, available_minutes: int) -> BalanceRecord:
        return self._request(
            "PATCH",
            "/api/balance",
            BalanceRecord,
            json={"availableMinutes": available_minutes},
        )

    # -- preferences ------------------------------------------------------

    def get_preferences(self) -> PreferencesRecord:
        return self._request("GET", "/api/preferences", PreferencesRecord)

    def update_preferences(self, focus_duration_minutes: int, focus_mode: str) -> PreferencesRecord:
        return self._request(
            "PATCH",
            "/api/preferences",
            PreferencesRecord,
            json={"focusDurationMinutes": focus_duration_minutes, "focusMode": focus_mode},
        )

    # -- plumbing ---------------------------------------------------------

    def _request(
        self,
        method: str,
        endpoint: str,
        model: Type[ModelT],
        json: Optional[dict[str, Any]] = None,
    ) -> ModelT:
        token = self._token_provider()
        if not token:
            raise Unauthorized()
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

        try:
            response = self._client.request(method, endpoint, headers=headers, json=json)
        except httpx.HTTPError as exc:
            logger.debug("%s %s failed: %s", method, endpoint, exc)
            raise NetworkError(exc) from exc

        status = response.status_code
        if 200 <= status < 300:
            envelope = _decode_envelope(response)
            data = envelope.get("data")
            if envelope.get("success") and data is not None:
                try:
                    return model.model_validate(data)
                except ValidationError as exc:
                    raise DecodingError(str(exc)) from exc
            raise BadRequest(envelope.get("error") or "Unknown error")
        if status == 401:
            raise Unauthorized()
        if status == 404:
            raise NotFound()
        if 400 <= status < 500:
            try:
                message = _decode_envelope(response).get("error") or "Bad request"
            except DecodingError:
                message = "Bad request"
            raise BadRequest(message)
        raise ServerError()


def _decode_envelope(response: httpx.Response) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError as exc:
        raise DecodingError() from exc
    if not isinstance(body, dict):
        raise DecodingError()
    return body
