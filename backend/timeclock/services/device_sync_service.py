"""Server-initiated sync of access logs from the Control iD device, plus connection diagnostics."""

import logging
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from timeclock.config import settings
from timeclock.exceptions import ConfigurationMissing, DeviceError, StorageError, ValidationError
from timeclock.models.time_clock import SyncRun, WebhookConfig
from timeclock.schemas.time_clock import ConnectionReport, DeviceInfo, PollResult
from timeclock.services import clock_event_service
from timeclock.services.clock_type_service import infer_clock_type
from timeclock.services.device_client import DeviceClient
from timeclock.utils.clock import Clock, SystemClock, from_unix, utc_now_naive

logger = logging.getLogger(__name__)

POLLING_SYNC_TYPE = "polling"

ClientFactory = Callable[[WebhookConfig], DeviceClient]


def _client_for_config(config: WebhookConfig) -> DeviceClient:
    return DeviceClient(config.device_ip, config.device_login, config.device_password)


def _sync_window_start(config: WebhookConfig, clock: Clock) -> int:
    now = utc_now_naive(clock)
    since = config.last_sync_at or now - timedelta(hours=settings.POLL_LOOKBACK_HOURS)
    return int((since - from_unix(0)).total_seconds())


def _sync_access_log(log: Dict[str, Any], device_id: str, clock: Clock, db: Session) -> Optional[Dict[str, Any]]:
    """Stores one access log. Returns ``None`` for an already-stored log, otherwise the result row."""
    log_id = str(log.get("id"))
    if clock_event_service.find_duplicate(device_id, log_id, db):
        logger.info("[device-sync] skipping duplicate log_id %s", log_id)
        return None

    employee, reason = clock_event_service.resolve_mapped_employee(int(log.get("user_id")), db)
    if not employee:
        logger.warning("[device-sync] log %s: %s (controlid_user_id=%s)", log_id, reason, log.get("user_id"))
        return {"log_id": log.get("id"), "success": False, "error": reason}

    clock_type = infer_clock_type(employee.id, clock, db)
    timestamp = from_unix(log.get("time"))
    clock_event_service.insert_punch(
        {
            "employee_id": employee.id,
            "user_id": employee.user_id,
            "clock_type": clock_type,
            "timestamp": timestamp,
            "device_id": device_id,
            "controlid_log_id": log_id,
            "verified": True,
        },
        db,
    )
    logger.info("[device-sync] synced %s - %s at %s", employee.full_name, clock_type, timestamp.isoformat())
    return {"log_id": log.get("id"), "success": True, "clock_type": clock_type}


def poll_device(
    db: Session,
    clock: Optional[Clock] = None,
    client_factory: ClientFactory = _client_for_config,
) -> PollResult:
    clock = clock or SystemClock()

    config = clock_event_service.get_active_config(db)
    if not config:
        logger.error("[device-sync] no active time clock configuration found")
        raise ConfigurationMissing()
    if not config.device_ip:
        raise ValidationError("Device IP not configured")

    device_id = config.device_ip
    run = clock_event_service.start_sync_run(POLLING_SYNC_TYPE, device_id, db)
    logger.info("[device-sync] starting sync with Control iD at %s", device_id)

    synced = 0
    failed = 0
    results: List[Dict[str, Any]] = []

    try:
        client = client_factory(config)
        client.login()
        access_logs = client.load_access_logs(_sync_window_start(config, clock))
        logger.info("[device-sync] found %d access logs", len(access_logs))

        for log in access_logs:
            try:
                outcome = _sync_access_log(log, device_id, clock, db)
            except (SQLAlchemyError, TypeError, ValueError, OverflowError, OSError) as exc:
                outcome = {"log_id": log.get("id"), "success": False, "error": str(exc)}
            if outcome is None:
                continue
            results.append(outcome)
            if outcome["success"]:
                synced += 1
            else:
                failed += 1

        config.last_sync_at = utc_now_naive(clock)
        db.commit()
    except DeviceError as exc:
        logger.error("[device-sync] sync error: %s", exc)
        clock_event_service.finish_sync_run(run, synced, failed, results, clock, db, error_message=str(exc))
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("[device-sync] failed to record sync timestamp")
        raise StorageError("Failed to update configuration", str(exc))

    clock_event_service.finish_sync_run(run, synced, failed, results, clock, db)
    return PollResult(
        records_synced=synced,
        records_failed=failed,
        total_logs_found=len(results),
    )


def check_connection(
    device_ip: str,
    login: Optional[str] = None,
    password: Optional[str] = None,
    client_factory: Callable[..., DeviceClient] = DeviceClient,
) -> ConnectionReport:
    if not device_ip:
        raise ValidationError("device_ip is required")

    logger.info("[device-sync] testing connection to Control iD at %s", device_ip)
    client = client_factory(device_ip, login, password)
    try:
        client.login()
    except DeviceError as exc:
        logger.warning("[device-sync] connection test failed for %s: %s", device_ip, exc)
        return ConnectionReport(success=False, error=exc.error, status=exc.extra.get("status"))

    general = ((client.get_configuration() or {}).get("general") or {})
    try:
        user_count = len(client.load_users())
    except DeviceError:
        user_count = 0

    return ConnectionReport(
        success=True,
        device_info=DeviceInfo(
            ip=device_ip,
            name=general.get("name") or "Control iD",
            serial=general.get("serial") or "Unknown",
            firmware=general.get("firmware") or "Unknown",
        ),
        user_count=user_count,
        session_valid=True,
    )


def list_sync_runs(db: Session, limit: int = 20) -> List[SyncRun]:
    return db.query(SyncRun).order_by(SyncRun.id.desc()).limit(limit).all()
