"""Push-style (object_changes) webhook: mapping resolution, dedup, failure isolation and sync run bookkeeping."""

import pytest
from sqlalchemy.exc import OperationalError

from timeclock.models.time_clock import PunchRecord, SyncRun
from timeclock.schemas.time_clock import PushPayload
from timeclock.services import clock_event_service

WEBHOOK_URL = "/api/time-clock/webhook"
DEVICE_ID = 478435


def _batch(*changes, device_id=DEVICE_ID):
    return {"object_changes": list(changes), "device_id": device_id}


def _punches(db):
    db.expire_all()
    return db.query(PunchRecord).order_by(PunchRecord.timestamp.asc()).all()


def test_push_batch_assigns_sequential_clock_types(client, db, seed_config, seed_mappings, access_log, when):
    payload = _batch(
        access_log(101, 1, when(8)),
        access_log(102, 1, when(12)),
        access_log(103, 2, when(8, 5)),
    )
    resp = client.post(WEBHOOK_URL, json=payload)
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["synced"] == 3
    assert body["failed"] == 0
    assert [r["clock_type"] for r in body["results"]] == ["entry", "break_start", "entry"]

    rows = _punches(db)
    assert len(rows) == 3
    assert all(r.source == "device" and r.verified for r in rows)
    assert {r.device_id for r in rows} == {str(DEVICE_ID)}
    assert {r.controlid_log_id for r in rows} == {"101", "102", "103"}


def test_replayed_batch_is_idempotent(client, db, seed_config, seed_mappings, access_log, when):
    payload = _batch(access_log(201, 1, when(8)), access_log(202, 2, when(8, 1)))
    first = client.post(WEBHOOK_URL, json=payload)
    assert first.json()["synced"] == 2

    second = client.post(WEBHOOK_URL, json=payload)
    assert second.status_code == 200
    body = second.json()
    assert body["synced"] == 0
    assert body["failed"] == 0
    assert all(r["success"] and r["duplicate"] for r in body["results"])
    assert all(r["message"] == "Duplicate - skipped" for r in body["results"])
    assert len(_punches(db)) == 2

    runs = db.query(SyncRun).order_by(SyncRun.id.asc()).all()
    assert [r.status for r in runs] == ["success", "success"]
    assert runs[1].records_synced == 0


def test_unmapped_user_is_isolated_and_marks_run_partial(client, db, seed_config, seed_mappings, access_log, when):
    payload = _batch(
        access_log(301, 1, when(8)),
        access_log(302, 999, when(8, 2)),
        access_log(303, 2, when(8, 3)),
    )
    resp = client.post(WEBHOOK_URL, json=payload)
    assert resp.status_code == 200
    body = resp.json()
    assert body["synced"] == 2
    assert body["failed"] == 1
    failure = body["results"][1]
    assert failure == {
        "log_id": 302,
        "success": False,
        "duplicate": False,
        "clock_type": None,
        "message": None,
        "error": "User mapping not found",
    }

    run = db.query(SyncRun).one()
    assert run.sync_type == "push"
    assert run.status == "partial"
    assert run.records_synced == 2
    assert run.records_failed == 1
    assert run.device_id == str(DEVICE_ID)
    assert run.completed_at is not None
    assert len(run.details["results"]) == 3


def test_all_failures_mark_run_error(client, db, seed_config, seed_mappings, access_log, when):
    resp = client.post(WEBHOOK_URL, json=_batch(access_log(401, 77, when(9))))
    assert resp.status_code == 200
    assert resp.json()["failed"] == 1
    assert db.query(SyncRun).one().status == "error"


def test_mapping_to_missing_employee(client, db, seed_config, seed_mappings, access_log, when):
    from timeclock.models.employee import DeviceUserMapping

    db.add(DeviceUserMapping(employee_id="gone", controlid_user_id=5))
    db.commit()

    resp = client.post(WEBHOOK_URL, json=_batch(access_log(501, 5, when(9))))
    assert resp.json()["results"][0]["error"] == "Employee not found"


def test_non_access_log_changes_are_skipped_silently(client, db, seed_config, seed_mappings, access_log, when):
    payload = _batch(
        access_log(601, 1, when(8), change_type="updated"),
        access_log(602, 1, when(8), obj="users"),
        access_log(603, 1, when(8)),
    )
    body = client.post(WEBHOOK_URL, json=payload).json()
    assert body["synced"] == 1
    assert body["failed"] == 0
    assert [r["log_id"] for r in body["results"]] == [603]


def test_entry_device_id_overrides_batch_device(client, db, seed_config, seed_mappings, access_log, when):
    payload = _batch(access_log(701, 1, when(8), device_id=555), access_log(701, 2, when(8)))
    body = client.post(WEBHOOK_URL, json=payload).json()
    # same log id on two devices is not a duplicate
    assert body["synced"] == 2
    assert {r.device_id for r in _punches(db)} == {"555", str(DEVICE_ID)}


def test_invalid_access_log_values_count_as_failure(client, db, seed_config, seed_mappings, access_log, when):
    broken = {"object": "access_logs", "type": "inserted", "values": {"id": "x"}}
    body = client.post(WEBHOOK_URL, json=_batch(broken, access_log(801, 1, when(8)))).json()
    assert body["synced"] == 1
    assert body["failed"] == 1
    assert body["results"][0]["error"] == "Invalid access log entry"


def test_insert_failure_is_reported_per_entry(client, db, seed_config, seed_mappings, access_log, when, monkeypatch):
    original = clock_event_service.insert_punch
    calls = {"n": 0}

    def _flaky_insert(values, db):
        calls["n"] += 1
        if calls["n"] == 1:
            raise OperationalError("INSERT", {}, Exception("disk I/O error"))
        return original(values, db)

    monkeypatch.setattr(clock_event_service, "insert_punch", _flaky_insert)

    body = client.post(WEBHOOK_URL, json=_batch(access_log(901, 1, when(8)), access_log(902, 2, when(8)))).json()
    assert body["synced"] == 1
    assert body["failed"] == 1
    assert "disk I/O error" in body["results"][0]["error"]
    assert db.query(SyncRun).one().status == "partial"


def test_out_of_range_time_is_isolated(client, db, seed_config, seed_mappings, access_log, when):
    far_future = access_log(1002, 1, when(9))
    far_future["values"]["time"] = "99999999999999"
    payload = _batch(access_log(1001, 1, when(8)), far_future, access_log(1003, 2, when(8)))

    resp = client.post(WEBHOOK_URL, json=payload)
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["synced"] == 2
    assert body["failed"] == 1
    assert body["results"][1]["error"] == "Invalid access log entry"

    run = db.query(SyncRun).one()
    assert run.status == "partial"
    assert run.completed_at is not None


def test_unique_constraint_race_is_reported_per_entry(client, db, seed_config, seed_mappings, access_log, when, monkeypatch):
    # the pre-insert lookup misses, as when a concurrent request wins the race
    monkeypatch.setattr(clock_event_service, "find_duplicate", lambda device_id, log_id, db: None)

    payload = _batch(access_log(1, 1, when(8)), access_log(1, 1, when(8)), access_log(2, 2, when(8, 1)))
    resp = client.post(WEBHOOK_URL, json=payload)
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["synced"] == 2
    assert body["failed"] == 1
    assert body["results"][1]["success"] is False
    assert "UNIQUE constraint failed" in body["results"][1]["error"]
    assert body["results"][2]["success"] is True

    rows = _punches(db)
    assert len([r for r in rows if r.controlid_log_id == "1"]) == 1
    assert {r.controlid_log_id for r in rows} == {"1", "2"}
    assert db.query(SyncRun).one().status == "partial"


def test_unexpected_error_still_closes_sync_run(db, clock, seed_config, seed_mappings, access_log, when, monkeypatch):
    original = clock_event_service.infer_clock_type
    calls = {"n": 0}

    def _exploding_infer(employee_id, clock, db):
        calls["n"] += 1
        if calls["n"] == 2:
            raise RuntimeError("inference blew up")
        return original(employee_id, clock, db)

    monkeypatch.setattr(clock_event_service, "infer_clock_type", _exploding_infer)

    payload = PushPayload.model_validate(_batch(access_log(1101, 1, when(8)), access_log(1102, 2, when(8))))
    with pytest.raises(RuntimeError):
        clock_event_service.process_push(payload, clock, db)

    db.expire_all()
    run = db.query(SyncRun).one()
    assert run.status == "error"
    assert run.error_message == "inference blew up"
    assert run.records_synced == 1
    assert run.completed_at is not None


def test_end_to_end_day_with_replay(client, db, clock, seed_config, seed_mappings, access_log, when):
    def push(log_id, hour):
        clock.advance_to(when(hour))
        resp = client.post(WEBHOOK_URL, json=_batch(access_log(log_id, 1, when(hour))))
        assert resp.status_code == 200
        return resp.json()["results"][0]

    assert push(1, 8)["clock_type"] == "entry"
    assert push(2, 12)["clock_type"] == "break_start"
    assert push(3, 13)["clock_type"] == "break_end"
    assert push(4, 17)["clock_type"] == "exit"

    replay = push(1, 17)
    assert replay["duplicate"] is True
    assert len(_punches(db)) == 4

    assert push(5, 18)["clock_type"] == "entry"
    assert [p.clock_type for p in _punches(db)] == ["entry", "break_start", "break_end", "exit", "entry"]
