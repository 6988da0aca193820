"""Time-clock API router: device webhook, polling sync and device diagnostics."""

from typing import Any, List, Optional

from fastapi import APIRouter, Body, Depends, Header, Query
from sqlalchemy.orm import Session

from timeclock.database import get_db
from timeclock.schemas.time_clock import (
    ConnectionReport,
    ConnectionTestIn,
    LegacyResult,
    PollResult,
    PushResult,
    SyncRunOut,
)
from timeclock.services import clock_event_service, device_sync_service
from timeclock.utils.clock import Clock, SystemClock

router = APIRouter(prefix="/api/time-clock", tags=["time-clock"])


def get_clock() -> Clock:
    return SystemClock()


@router.post("/webhook", response_model=PushResult | LegacyResult)
def receive_webhook(
    body: Any = Body(None),
    x_webhook_secret: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    return clock_event_service.handle(body, x_webhook_secret, db, clock)


@router.post("/sync", response_model=PollResult)
def run_polling_sync(db: Session = Depends(get_db), clock: Clock = Depends(get_clock)):
    return device_sync_service.poll_device(db, clock)


@router.post("/test-connection", response_model=ConnectionReport)
def test_device_connection(data: ConnectionTestIn):
    return device_sync_service.check_connection(data.device_ip, data.device_login, data.device_password)


@router.get("/sync-runs", response_model=List[SyncRunOut])
def list_sync_runs(limit: int = Query(20, ge=1, le=200), db: Session = Depends(get_db)):
    return device_sync_service.list_sync_runs(db, limit)
