"""Initialize the database - creates all tables and an active time clock configuration."""
import argparse
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy.orm import sessionmaker

from timeclock.database import engine as default_engine, Base
import timeclock.models  # noqa: F401 - registers all models
from timeclock.models.time_clock import WebhookConfig


def init_db(engine=None, webhook_secret=None, device_ip=None, device_login=None, device_password=None):
    engine = engine or default_engine
    print("Creating all database tables...")
    Base.metadata.create_all(bind=engine)

    db = sessionmaker(bind=engine)()
    try:
        config = db.query(WebhookConfig).filter(WebhookConfig.is_active == True).first()
        if config:
            print(f"Active time clock configuration already present (id={config.id}).")
        else:
            config = WebhookConfig(
                webhook_secret=webhook_secret or "",
                is_active=True,
                device_ip=device_ip,
                device_login=device_login,
                device_password=device_password,
            )
            db.add(config)
            db.commit()
            print(f"Created time clock configuration (id={config.id}).")
        return config.id
    finally:
        db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--secret", default="", help="shared x-webhook-secret value")
    parser.add_argument("--device-ip", default=None)
    parser.add_argument("--device-login", default=None)
    parser.add_argument("--device-password", default=None)
    args = parser.parse_args()
    init_db(
        webhook_secret=args.secret,
        device_ip=args.device_ip,
        device_login=args.device_login,
        device_password=args.device_password,
    )
    print("Database initialized successfully.")
