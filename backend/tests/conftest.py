import pytest
from datetime import datetime, timezone
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from timeclock.database import Base, get_db
from timeclock.main import app
from timeclock.models.employee import Employee, DeviceUserMapping
from timeclock.models.time_clock import WebhookConfig
from timeclock.routers.time_clock import get_clock
from timeclock.utils.clock import FixedClock

TEST_DB_URL = "sqlite:///./test_timeclock.db"

engine = create_engine(TEST_DB_URL, connect_args={"check_same_thread": False})
TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSession()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    db = TestingSession()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def clock():
    clock = FixedClock(datetime(2026, 10, 16, 8, 0, tzinfo=timezone.utc))
    app.dependency_overrides[get_clock] = lambda: clock
    yield clock
    app.dependency_overrides.pop(get_clock, None)


@pytest.fixture
def client(clock):
    return TestClient(app)


@pytest.fixture
def seed_config(db):
    config = WebhookConfig(webhook_secret="", is_active=True, device_ip="10.0.0.50")
    db.add(config)
    db.commit()
    db.refresh(config)
    return config


@pytest.fixture
def seed_employees(db):
    employees = {
        "ana": Employee(user_id="acc-ana", full_name="Ana Souza", cpf="12345678901"),
        "bruno": Employee(user_id="acc-bruno", full_name="Bruno Lima", cpf="98765432100"),
    }
    for e in employees.values():
        db.add(e)
    db.commit()
    for e in employees.values():
        db.refresh(e)
    return employees


@pytest.fixture
def seed_mappings(db, seed_employees):
    mappings = {
        "ana": DeviceUserMapping(employee_id=seed_employees["ana"].id, controlid_user_id=1, cpf="12345678901"),
        "bruno": DeviceUserMapping(employee_id=seed_employees["bruno"].id, controlid_user_id=2, cpf="98765432100"),
    }
    for m in mappings.values():
        db.add(m)
    db.commit()
    return mappings


@pytest.fixture
def access_log():
    """Builds one ``object_changes`` entry the way the device posts it (numbers as strings)."""

    def _build(log_id: int, user_id: int, at: datetime, device_id=None, change_type="inserted", obj="access_logs"):
        values = {
            "id": str(log_id),
            "time": str(int(at.timestamp())),
            "event": "7",
            "user_id": str(user_id),
            "portal_id": "1",
        }
        if device_id is not None:
            values["device_id"] = str(device_id)
        return {"object": obj, "type": change_type, "values": values}

    return _build


def at(hour: int, minute: int = 0, day: int = 16) -> datetime:
    return datetime(2026, 10, day, hour, minute, tzinfo=timezone.utc)


@pytest.fixture
def when():
    return at
