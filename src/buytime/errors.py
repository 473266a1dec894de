"""Exception types raised by the BuyTime client and state machine."""

from __future__ import annotations


class APIError(Exception):
    """Base class for failures talking to the remote balance service."""

    retryable = False


class Unauthorized(APIError):
    def __init__(self, message: str = "Not authorized. Please sign in again.") -> None:
        super().__init__(message)


class NotFound(APIError):
    def __init__(self, message: str = "Resource not found.") -> None:
        super().__init__(message)


class BadRequest(APIError):
    def __init__(self, message: str = "Bad request") -> None:
        super().__init__(f"Bad request: {message}")
        self.message = message


class ServerError(APIError):
    retryable = True

    def __init__(self, message: str = "Server error. Please try again later.") -> None:
        super().__init__(message)


class NetworkError(APIError):
    retryable = True

    def __init__(self, cause: BaseException) -> None:
        super().__init__(f"Network error: {cause}")
        self.cause = cause


class DecodingError(APIError):
    def __init__(self, message: str = "Failed to parse server response.") -> None:
        super().__init__(message)


class InsufficientBalanceError(Exception):
    """Raised when a spend request exceeds the available minutes."""

    def __init__(self, available: int, required: int) -> None:
        super().__init__(
            f"Not enough earned time: {available} min available, {required} min required."
        )
        self.available = available
        self.required = required
