from sqlalchemy import create_engine, inspect
from sqlalchemy.orm import sessionmaker

from scripts.init_db import init_db
from timeclock.models.time_clock import WebhookConfig


def test_init_db_creates_tables_and_single_active_config(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'init.db'}")

    first_id = init_db(engine, webhook_secret="s3cret", device_ip="10.0.0.50")
    second_id = init_db(engine, webhook_secret="other")

    tables = set(inspect(engine).get_table_names())
    assert {"employee_profiles", "controlid_user_mappings", "employee_time_clock",
            "controlid_sync_logs", "time_clock_config"} <= tables

    db = sessionmaker(bind=engine)()
    try:
        configs = db.query(WebhookConfig).all()
        assert first_id == second_id
        assert len(configs) == 1
        assert configs[0].webhook_secret == "s3cret"
        assert configs[0].device_ip == "10.0.0.50"
    finally:
        db.close()
    engine.dispose()
