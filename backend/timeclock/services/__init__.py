"""Service layer package."""

from timeclock.services import (
    clock_type_service,
    clock_event_service,
    device_client,
    device_sync_service,
)
