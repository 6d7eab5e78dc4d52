from datetime import date, datetime, time, timedelta
from typing import List

from sqlalchemy.orm import Session

from icebath.core.config import settings
from icebath.models.time_slot import TimeSlot


def operating_times() -> List[time]:
    """
    Start times of every session in a business day.

    Sessions start every SLOT_INTERVAL_MINUTES from OPENING_HOUR and must
    finish by CLOSING_HOUR.
    """
    times = []
    cursor = datetime.combine(date.min, time(hour=settings.OPENING_HOUR))
    closing = datetime.combine(date.min, time(hour=settings.CLOSING_HOUR))
    step = timedelta(minutes=settings.SLOT_INTERVAL_MINUTES)
    duration = timedelta(minutes=settings.SESSION_DURATION_MINUTES)
    while cursor + duration <= closing:
        times.append(cursor.time())
        cursor += step
    return times


def is_operating_day(day: date) -> bool:
    return day.weekday() in settings.OPENING_DAYS


def is_within_business_hours(day: date, slot_time: time) -> bool:
    return is_operating_day(day) and slot_time.replace(second=0, microsecond=0) in operating_times()


def generate_day_slots(db: Session, day: date, service_type: str) -> int:
    """
    Insert the missing slots of one operating day.

    Existing rows are left untouched. Returns the number of slots created;
    closed days create nothing. Flushes but does not commit.
    """
    if not is_operating_day(day):
        return 0

    existing = {
        row.slot_time
        for row in db.query(TimeSlot.slot_time).filter(
            TimeSlot.slot_date == day,
            TimeSlot.service_type == service_type,
        )
    }

    created = 0
    for slot_time in operating_times():
        if slot_time in existing:
            continue
        db.add(TimeSlot(
            slot_date=day,
            slot_time=slot_time,
            service_type=service_type,
            capacity=settings.SLOT_CAPACITY,
            booked_count=0,
            is_available=True,
        ))
        created += 1

    if created:
        db.flush()
    return created


def generate_range(db: Session, date_from: date, date_to: date, service_type: str) -> tuple[int, int]:
    """Generate slots for every operating day in [date_from, date_to]. Returns (created, skipped)."""
    per_day = len(operating_times())
    created = skipped = 0
    day = date_from
    while day <= date_to:
        if is_operating_day(day):
            made = generate_day_slots(db, day, service_type)
            created += made
            skipped += per_day - made
        day += timedelta(days=1)
    return created, skipped
