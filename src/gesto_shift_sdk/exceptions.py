from __future__ import annotations

from dataclasses import dataclass


@dataclass
class ApiError(Exception):
    code: str
    message: str
    details: object | None
    status_code: int
    raw_payload: object | None = None

    def __str__(self) -> str:
        return f"[{self.status_code}] {self.code}: {self.message}"


class NotFoundError(ApiError):
    pass


class ValidationError(ApiError):
    pass


class ConflictError(ApiError):
    """409 or conflict-style errors."""


class ServerError(ApiError):
    """5xx server-side failures."""


class TransportError(ApiError):
    """Network/transport failure before an HTTP response was returned."""


class ShiftError(Exception):
    """Base class for failures raised by the shift core itself."""


class InputRejected(ShiftError):
    """A quantity or denomination input failed the grammar or its ceiling."""

    def __init__(self, value: str, reason: str) -> None:
        super().__init__(f"input {value!r} rejected: {reason}")
        self.value = value
        self.reason = reason


class ParseFailed(ShiftError):
    """A persisted record exists but cannot be decoded."""

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"record {key!r} is unreadable: {reason}")
        self.key = key
        self.reason = reason


class SyncFailed(ShiftError):
    def __init__(self, flow: str, cause: Exception) -> None:
        super().__init__(f"sync for {flow} failed: {cause}")
        self.flow = flow
        self.cause = cause


class ConnectivityLost(ShiftError):
    pass


class ValidationFailed(ShiftError):
    """Reconciliation blocked a closing action; carries the failing reasons."""

    def __init__(self, action: str, reasons: list[str]) -> None:
        super().__init__(f"{action} blocked: {', '.join(reasons)}")
        self.action = action
        self.reasons = reasons


class SelectionMissingError(ShiftError):
    """No area or responsible user is selected in the local store."""
