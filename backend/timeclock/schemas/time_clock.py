"""Request/response contracts for the time-clock webhook, polling sync and device diagnostics."""

from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator

from timeclock.utils.clock import from_unix

ACCESS_LOG_OBJECT = "access_logs"
INSERTED_CHANGE = "inserted"
VERIFIED_METHODS = ("biometry", "facial")


class AccessLogValues(BaseModel):
    """One row of the device's ``access_logs`` table. The device sends numbers as strings."""

    id: int
    time: int
    user_id: int
    device_id: Optional[Union[int, str]] = None
    event: Optional[int] = None
    portal_id: Optional[int] = None

    model_config = {"extra": "ignore"}

    @field_validator("time")
    @classmethod
    def _time_in_range(cls, value):
        try:
            from_unix(value)
        except (ValueError, OverflowError, OSError) as exc:
            raise ValueError(f"unix time out of range: {value}") from exc
        return value


class ObjectChange(BaseModel):
    object: str = ""
    type: str = ""
    values: Dict[str, Any] = Field(default_factory=dict)

    def is_access_log_insert(self) -> bool:
        return self.object == ACCESS_LOG_OBJECT and self.type == INSERTED_CHANGE


class PushPayload(BaseModel):
    object_changes: List[ObjectChange]
    device_id: Optional[Union[int, str]] = None


class LegacyPayload(BaseModel):
    cpf: Optional[str] = None
    timestamp: Optional[datetime] = None
    device_id: Optional[str] = None
    verification_type: Optional[str] = None
    photo: Optional[str] = None

    @field_validator("cpf", "device_id", mode="before")
    @classmethod
    def _stringify(cls, value):
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @field_validator("timestamp", mode="before")
    @classmethod
    def _blank_timestamp(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def is_verified(self) -> bool:
        return self.verification_type in VERIFIED_METHODS


WebhookPayload = Union[PushPayload, LegacyPayload]


class PushEntryResult(BaseModel):
    log_id: Optional[int] = None
    success: bool
    duplicate: bool = False
    clock_type: Optional[str] = None
    message: Optional[str] = None
    error: Optional[str] = None


class PushResult(BaseModel):
    synced: int
    failed: int
    results: List[PushEntryResult]


class LegacyRecordOut(BaseModel):
    id: str
    employee_name: str
    clock_type: str
    timestamp: datetime


class LegacyResult(BaseModel):
    success: bool = True
    record: LegacyRecordOut


class PollResult(BaseModel):
    success: bool = True
    records_synced: int
    records_failed: int
    total_logs_found: int


class SyncRunOut(BaseModel):
    id: int
    sync_type: str
    status: str
    device_id: Optional[str] = None
    records_synced: int
    records_failed: int
    error_message: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ConnectionTestIn(BaseModel):
    device_ip: str = ""
    device_login: Optional[str] = None
    device_password: Optional[str] = None


class DeviceInfo(BaseModel):
    ip: str
    name: str = "Control iD"
    serial: str = "Unknown"
    firmware: str = "Unknown"


class ConnectionReport(BaseModel):
    success: bool
    error: Optional[str] = None
    status: Optional[int] = None
    device_info: Optional[DeviceInfo] = None
    user_count: int = 0
    session_valid: bool = False
