"""SQLAlchemy model package."""

from timeclock.models.employee import Employee, DeviceUserMapping
from timeclock.models.time_clock import PunchRecord, SyncRun, WebhookConfig

__all__ = [
    "Employee", "DeviceUserMapping",
    "PunchRecord", "SyncRun", "WebhookConfig",
]
