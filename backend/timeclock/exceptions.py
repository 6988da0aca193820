"""Error taxonomy for the time-clock service. Each error maps to an HTTP status and a JSON body."""

from typing import Any, Dict, Optional


class TimeClockError(Exception):
    """Base error rendered as ``{"error": ..., "details": ...}``."""

    status_code = 500
    default_error = "Internal server error"

    def __init__(self, error: Optional[str] = None, details: Optional[str] = None, **extra: Any):
        self.error = error or self.default_error
        self.details = details
        self.extra = extra
        super().__init__(self.error if details is None else f"{self.error}: {details}")

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.error}
        if self.details is not None:
            payload["details"] = self.details
        payload.update(self.extra)
        return payload


class ConfigurationMissing(TimeClockError):
    status_code = 404
    default_error = "Configuration not found"


class Unauthorized(TimeClockError):
    status_code = 401
    default_error = "Invalid webhook secret"


class ValidationError(TimeClockError):
    status_code = 400
    default_error = "Invalid payload"


class NotFound(TimeClockError):
    status_code = 404
    default_error = "Not found"


class StorageError(TimeClockError):
    status_code = 500
    default_error = "Failed to insert record"


class DeviceError(TimeClockError):
    """Raised when the Control iD device cannot be reached or rejects a call."""

    status_code = 502
    default_error = "Device communication failed"
