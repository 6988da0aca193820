"""Clock event processing for the Control iD webhook.

Handles both payload shapes the device integration sends:

* push: ``{"object_changes": [...], "device_id": ...}`` with access-log rows
  already committed on the device. Rows are resolved through the device-user
  mapping and de-duplicated on (device id, log id).
* legacy: a single flat event keyed by CPF. There is no de-duplication key on
  this path; every valid call creates a punch.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

import pydantic
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from timeclock.exceptions import (
    ConfigurationMissing,
    NotFound,
    StorageError,
    Unauthorized,
    ValidationError,
)
from timeclock.models.employee import DeviceUserMapping, Employee
from timeclock.models.time_clock import PUNCH_SOURCE, PunchRecord, SyncRun, WebhookConfig
from timeclock.schemas.time_clock import (
    AccessLogValues,
    LegacyPayload,
    LegacyRecordOut,
    LegacyResult,
    ObjectChange,
    PushEntryResult,
    PushPayload,
    PushResult,
    WebhookPayload,
)
from timeclock.services.clock_type_service import infer_clock_type
from timeclock.utils.clock import Clock, SystemClock, as_utc, from_unix, to_utc_naive, utc_now_naive

logger = logging.getLogger(__name__)

MAPPING_NOT_FOUND = "User mapping not found"
EMPLOYEE_NOT_FOUND = "Employee not found"
INVALID_ENTRY = "Invalid access log entry"
DUPLICATE_SKIPPED = "Duplicate - skipped"

PUSH_SYNC_TYPE = "push"


def get_active_config(db: Session) -> Optional[WebhookConfig]:
    return (
        db.query(WebhookConfig)
        .filter(WebhookConfig.is_active == True)
        .order_by(WebhookConfig.id.asc())
        .first()
    )


def verify_secret(config: WebhookConfig, supplied_secret: Optional[str]) -> None:
    # Only enforced when both sides carry a secret.
    if supplied_secret and config.webhook_secret and config.webhook_secret != supplied_secret:
        logger.error("[time-clock] invalid webhook secret (config_id=%s)", config.id)
        raise Unauthorized()


def parse_webhook_payload(raw: Any) -> WebhookPayload:
    if not isinstance(raw, dict):
        raise ValidationError("Invalid payload", "Expected a JSON object")
    try:
        if isinstance(raw.get("object_changes"), list):
            return PushPayload.model_validate(raw)
        return LegacyPayload.model_validate(raw)
    except pydantic.ValidationError as exc:
        logger.error("[time-clock] payload validation failed: %s", exc)
        raise ValidationError("Invalid payload", str(exc))


def normalize_cpf(cpf: Optional[str]) -> str:
    return "".join(ch for ch in (cpf or "") if ch.isdigit())


def sync_status(synced: int, failed: int) -> str:
    if failed == 0:
        return "success"
    return "partial" if synced > 0 else "error"


def find_duplicate(device_id: Optional[str], log_id: str, db: Session) -> Optional[PunchRecord]:
    return (
        db.query(PunchRecord)
        .filter(
            PunchRecord.device_id == device_id,
            PunchRecord.controlid_log_id == log_id,
        )
        .first()
    )


def resolve_mapped_employee(
    controlid_user_id: int, db: Session
) -> Tuple[Optional[Employee], Optional[str]]:
    """Returns the employee for a device user id, or the failure reason."""
    mapping = (
        db.query(DeviceUserMapping)
        .filter(DeviceUserMapping.controlid_user_id == controlid_user_id)
        .first()
    )
    if not mapping:
        return None, MAPPING_NOT_FOUND
    employee = db.query(Employee).filter(Employee.id == mapping.employee_id).first()
    if not employee:
        return None, EMPLOYEE_NOT_FOUND
    return employee, None


def insert_punch(values: Dict[str, Any], db: Session) -> PunchRecord:
    """Commits one punch. Rolls back and re-raises on storage failure."""
    record = PunchRecord(source=PUNCH_SOURCE, **values)
    db.add(record)
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    db.refresh(record)
    return record


def start_sync_run(sync_type: str, device_id: Optional[str], db: Session) -> SyncRun:
    run = SyncRun(
        sync_type=sync_type,
        status="success",
        device_id=device_id,
        records_synced=0,
        records_failed=0,
    )
    db.add(run)
    db.commit()
    db.refresh(run)
    return run


def finish_sync_run(
    run: SyncRun,
    synced: int,
    failed: int,
    results: List[Dict[str, Any]],
    clock: Clock,
    db: Session,
    error_message: Optional[str] = None,
) -> SyncRun:
    run.status = "error" if error_message else sync_status(synced, failed)
    run.records_synced = synced
    run.records_failed = failed
    run.error_message = error_message
    run.completed_at = utc_now_naive(clock)
    run.details = {"results": results}
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("[time-clock] failed to update sync run %s", run.id)
        raise StorageError("Failed to update sync run", str(exc))
    db.refresh(run)
    return run


def _process_change(change: ObjectChange, batch_device_id: Optional[str], clock: Clock, db: Session) -> Optional[PushEntryResult]:
    """Handles one object change. Returns ``None`` for changes that are not access-log inserts."""
    if not change.is_access_log_insert():
        return None

    try:
        values = AccessLogValues.model_validate(change.values)
    except pydantic.ValidationError as exc:
        logger.warning("[time-clock] invalid access log entry %s: %s", change.values, exc)
        return PushEntryResult(success=False, error=INVALID_ENTRY)

    employee, reason = resolve_mapped_employee(values.user_id, db)
    if not employee:
        logger.warning(
            "[time-clock] log %s skipped: %s (controlid_user_id=%s)",
            values.id, reason, values.user_id,
        )
        return PushEntryResult(log_id=values.id, success=False, error=reason)

    clock_type = infer_clock_type(employee.id, clock, db)

    device_id = str(values.device_id) if values.device_id is not None else batch_device_id
    log_id = str(values.id)
    if find_duplicate(device_id, log_id, db):
        logger.info("[time-clock] duplicate log %s from device %s skipped", log_id, device_id)
        return PushEntryResult(log_id=values.id, success=True, duplicate=True, message=DUPLICATE_SKIPPED)

    timestamp = from_unix(values.time)
    try:
        insert_punch(
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
    except SQLAlchemyError as exc:
        logger.warning("[time-clock] insert failed for log %s (employee_id=%s): %s", log_id, employee.id, exc)
        return PushEntryResult(log_id=values.id, success=False, error=str(exc))

    logger.info(
        "[time-clock] synced %s - %s at %s",
        employee.full_name, clock_type, timestamp.isoformat(),
    )
    return PushEntryResult(log_id=values.id, success=True, clock_type=clock_type)


def process_push(payload: PushPayload, clock: Clock, db: Session) -> PushResult:
    batch_device_id = None if payload.device_id is None else str(payload.device_id)
    run = start_sync_run(PUSH_SYNC_TYPE, batch_device_id, db)

    synced = 0
    failed = 0
    results: List[PushEntryResult] = []

    try:
        for change in payload.object_changes:
            outcome = _process_change(change, batch_device_id, clock, db)
            if outcome is None:
                continue
            results.append(outcome)
            if not outcome.success:
                failed += 1
            elif not outcome.duplicate:
                synced += 1
    except Exception as exc:
        db.rollback()
        logger.exception("[time-clock] push batch aborted after %d synced, %d failed", synced, failed)
        finish_sync_run(run, synced, failed, [r.model_dump() for r in results], clock, db, error_message=str(exc))
        raise

    finish_sync_run(run, synced, failed, [r.model_dump() for r in results], clock, db)
    return PushResult(synced=synced, failed=failed, results=results)


def process_legacy(payload: LegacyPayload, clock: Clock, db: Session) -> LegacyResult:
    cpf = normalize_cpf(payload.cpf)
    if not cpf:
        logger.error("[time-clock] CPF not provided in payload")
        raise ValidationError("CPF is required")

    employee = db.query(Employee).filter(Employee.cpf == cpf).first()
    if not employee:
        logger.error("[time-clock] employee not found for CPF %s", cpf)
        raise NotFound("Employee not found", cpf=cpf)

    clock_type = infer_clock_type(employee.id, clock, db)
    timestamp = to_utc_naive(payload.timestamp) if payload.timestamp else utc_now_naive(clock)

    try:
        record = insert_punch(
            {
                "employee_id": employee.id,
                "user_id": employee.user_id,
                "clock_type": clock_type,
                "timestamp": timestamp,
                "device_id": payload.device_id or None,
                "verified": payload.is_verified(),
                "photo_url": payload.photo or None,
            },
            db,
        )
    except SQLAlchemyError as exc:
        logger.error("[time-clock] error inserting record for employee_id=%s: %s", employee.id, exc)
        raise StorageError("Failed to insert record", str(exc))

    logger.info(
        "[time-clock] record created: %s - %s at %s",
        employee.full_name, clock_type, timestamp.isoformat(),
    )
    return LegacyResult(
        record=LegacyRecordOut(
            id=record.id,
            employee_name=employee.full_name,
            clock_type=clock_type,
            timestamp=as_utc(timestamp),
        )
    )


def handle(
    raw_payload: Any,
    supplied_secret: Optional[str],
    db: Session,
    clock: Optional[Clock] = None,
):
    clock = clock or SystemClock()

    config = get_active_config(db)
    if not config:
        logger.error("[time-clock] no active time clock configuration found")
        raise ConfigurationMissing()
    verify_secret(config, supplied_secret)

    payload = parse_webhook_payload(raw_payload)
    logger.info("[time-clock] received %s payload: %s", type(payload).__name__, raw_payload)

    if isinstance(payload, PushPayload):
        return process_push(payload, clock, db)
    if isinstance(payload, LegacyPayload):
        return process_legacy(payload, clock, db)
    raise ValidationError("Invalid payload", f"Unsupported payload type {type(payload).__name__}")
