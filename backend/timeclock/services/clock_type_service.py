"""Clock-type inference: picks the punch category from the employee's last punch of the day."""

from typing import Optional

from sqlalchemy.orm import Session

from timeclock.models.time_clock import PunchRecord
from timeclock.utils.clock import Clock, start_of_today

FIRST_CLOCK_TYPE = "entry"

# Fixed cycle with no knowledge of shifts or break lengths. An employee who
# punches only twice a day gets entry then break_start on the second punch;
# that is the known coarse behavior and is kept as-is.
NEXT_CLOCK_TYPE = {
    "entry": "break_start",
    "break_start": "break_end",
    "break_end": "exit",
    "exit": "entry",
}


def next_clock_type(last_clock_type: Optional[str]) -> str:
    if last_clock_type is None:
        return FIRST_CLOCK_TYPE
    return NEXT_CLOCK_TYPE.get(last_clock_type, FIRST_CLOCK_TYPE)


def get_last_punch_today(employee_id: str, clock: Clock, db: Session) -> Optional[PunchRecord]:
    return (
        db.query(PunchRecord)
        .filter(
            PunchRecord.employee_id == employee_id,
            PunchRecord.timestamp >= start_of_today(clock),
        )
        .order_by(PunchRecord.timestamp.desc(), PunchRecord.created_at.desc())
        .first()
    )


def infer_clock_type(employee_id: str, clock: Clock, db: Session) -> str:
    """Only committed punches are visible, so punches earlier in the same batch count."""
    last = get_last_punch_today(employee_id, clock, db)
    return next_clock_type(last.clock_type if last else None)
