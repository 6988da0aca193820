"""Time-clock ledger, sync run and webhook configuration models."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, JSON, UniqueConstraint
from sqlalchemy.sql import func

from timeclock.database import Base

CLOCK_TYPES = ("entry", "break_start", "break_end", "exit")
PUNCH_SOURCE = "device"


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class PunchRecord(Base):
    __tablename__ = "employee_time_clock"

    id = Column(String(36), primary_key=True, default=_uuid)
    employee_id = Column(String(36), nullable=False, index=True)
    user_id = Column(String(36), nullable=True)
    clock_type = Column(String(20), nullable=False)  # entry/break_start/break_end/exit
    timestamp = Column(DateTime, nullable=False, index=True)  # naive UTC
    source = Column(String(20), nullable=False, default=PUNCH_SOURCE)
    device_id = Column(String(64), nullable=True)
    controlid_log_id = Column(String(64), nullable=True)
    verified = Column(Boolean, nullable=False, default=False)
    photo_url = Column(Text, nullable=True)
    # microsecond resolution; breaks ties between punches sharing a timestamp
    created_at = Column(DateTime, nullable=False, default=_utcnow)

    __table_args__ = (
        UniqueConstraint("device_id", "controlid_log_id", name="uq_time_clock_device_log"),
    )


class SyncRun(Base):
    __tablename__ = "controlid_sync_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    sync_type = Column(String(20), nullable=False)  # push/polling
    status = Column(String(20), nullable=False, default="success")  # success/partial/error
    device_id = Column(String(64), nullable=True)
    records_synced = Column(Integer, nullable=False, default=0)
    records_failed = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    details = Column(JSON, nullable=True)
    started_at = Column(DateTime, server_default=func.now())
    completed_at = Column(DateTime, nullable=True)


class WebhookConfig(Base):
    __tablename__ = "time_clock_config"

    id = Column(Integer, primary_key=True, autoincrement=True)
    webhook_secret = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    device_ip = Column(String(64), nullable=True)
    device_login = Column(String(64), nullable=True)
    device_password = Column(String(128), nullable=True)
    last_sync_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
