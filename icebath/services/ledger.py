"""
Slot capacity ledger.

``time_slots.booked_count`` is the single contended counter for a slot. Every
change goes through a compare-and-swap UPDATE (``WHERE booked_count = :seen``)
so two requests racing for the last seats cannot both win, whatever the
isolation level of the surrounding transaction.
"""

import logging
from dataclasses import dataclass
from datetime import date, time
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from icebath.core.exceptions import Conflict, NotFound
from icebath.models.booking import Booking
from icebath.models.time_slot import TimeSlot
from icebath.utils.timeslots import (
    generate_day_slots,
    is_operating_day,
    is_within_business_hours,
    operating_times,
)

logger = logging.getLogger(__name__)

MAX_CAS_ATTEMPTS = 5

# Bookings in these payment states hold seats (pending = checkout in flight)
OCCUPYING_PAYMENT_STATUSES = ("paid", "pending")


@dataclass
class Availability:
    available_seats: int
    has_private_hold: bool
    communal_guests: int

    @property
    def is_empty(self) -> bool:
        return not self.has_private_hold and self.communal_guests == 0


def seats_held(booking_type: str, guest_count: int, capacity: int) -> int:
    """Seats a booking occupies on the ledger: the whole slot when private."""
    if booking_type == "private":
        return capacity
    return guest_count


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


def _ensure_day(db: Session, day: date, service_type: str) -> None:
    """Lazily synthesise a day's missing slots, tolerating a concurrent generator."""
    if not is_operating_day(day):
        return
    existing = db.query(func.count(TimeSlot.id)).filter(
        TimeSlot.slot_date == day, TimeSlot.service_type == service_type
    ).scalar()
    if existing >= len(operating_times()):
        return
    try:
        with db.begin_nested():
            created = generate_day_slots(db, day, service_type)
        if created:
            logger.info("Generated %d %s slot(s) for %s", created, service_type, day)
    except IntegrityError:
        # Another request generated the same day first; its rows are what we want
        logger.info("Slots for %s were generated concurrently", day)


def get_slot(db: Session, slot_id: UUID) -> TimeSlot:
    slot = db.query(TimeSlot).filter(TimeSlot.id == slot_id).first()
    if not slot:
        raise NotFound("Time slot not found")
    return slot


def get_or_create_slot(db: Session, slot_date: date, slot_time: time, service_type: str) -> TimeSlot:
    """Return the slot for (date, time, service), generating the day on first use."""
    if not is_within_business_hours(slot_date, slot_time):
        raise NotFound(f"No session at {slot_time.strftime('%H:%M')} on {slot_date.isoformat()}")
    _ensure_day(db, slot_date, service_type)
    slot = db.query(TimeSlot).filter(
        TimeSlot.slot_date == slot_date,
        TimeSlot.slot_time == slot_time.replace(second=0, microsecond=0),
        TimeSlot.service_type == service_type,
    ).first()
    if not slot:
        raise NotFound("Time slot not found")
    return slot


def get_day_slots(db: Session, slot_date: date, service_type: str) -> List[TimeSlot]:
    _ensure_day(db, slot_date, service_type)
    return (
        db.query(TimeSlot)
        .filter(TimeSlot.slot_date == slot_date, TimeSlot.service_type == service_type)
        .order_by(TimeSlot.slot_time)
        .all()
    )


def compute_availability(db: Session, slot: TimeSlot, exclude_cancelled: bool = True) -> Availability:
    """
    Derive availability from the bookings that currently hold seats.

    Any active private booking zeroes the available seats regardless of the
    communal total.
    """
    query = db.query(Booking.booking_type, func.coalesce(func.sum(Booking.guest_count), 0)).filter(
        Booking.time_slot_id == slot.id,
        Booking.payment_status.in_(OCCUPYING_PAYMENT_STATUSES),
    )
    if exclude_cancelled:
        query = query.filter(Booking.booking_status != "cancelled")

    totals = dict(query.group_by(Booking.booking_type).all())
    communal = int(totals.get("communal", 0))
    has_private = "private" in totals

    available = 0 if has_private else max(0, slot.capacity - communal)
    return Availability(available_seats=available, has_private_hold=has_private, communal_guests=communal)


# ---------------------------------------------------------------------------
# Writes (compare-and-swap on booked_count)
# ---------------------------------------------------------------------------


def _compare_and_swap(db: Session, slot_id: UUID, seen: int, new_count: int, capacity: int) -> bool:
    updated = (
        db.query(TimeSlot)
        .filter(TimeSlot.id == slot_id, TimeSlot.booked_count == seen)
        .update(
            {"booked_count": new_count, "is_available": new_count < capacity},
            synchronize_session="fetch",
        )
    )
    return updated == 1


def _read_fresh(db: Session, slot_id: UUID) -> TimeSlot:
    slot = db.query(TimeSlot).populate_existing().filter(TimeSlot.id == slot_id).first()
    if not slot:
        raise NotFound("Time slot not found")
    return slot


def check_capacity(db: Session, slot: TimeSlot, booking_type: str, guest_count: int) -> Availability:
    """Raise Conflict if the slot cannot take this booking right now."""
    availability = compute_availability(db, slot)
    booked = slot.booked_count or 0

    if booking_type == "private":
        if booked > 0 or not availability.is_empty:
            raise Conflict("Time slot is not available for private booking")
        return availability

    if availability.has_private_hold:
        raise Conflict("Time slot has been booked privately")
    remaining = min(slot.capacity - booked, availability.available_seats)
    if guest_count > remaining:
        raise Conflict(
            f"Not enough space - only {max(remaining, 0)} spaces remaining",
            details={"available": max(remaining, 0), "requested": guest_count},
        )
    return availability


def reserve(db: Session, slot_id: UUID, booking_type: str, guest_count: int) -> TimeSlot:
    """
    Take seats on the slot. Conflict when the capacity rule fails or the
    counter keeps moving under us.
    """
    for attempt in range(1, MAX_CAS_ATTEMPTS + 1):
        slot = _read_fresh(db, slot_id)
        check_capacity(db, slot, booking_type, guest_count)

        seen = slot.booked_count or 0
        new_count = slot.capacity if booking_type == "private" else seen + guest_count
        if _compare_and_swap(db, slot_id, seen, new_count, slot.capacity):
            return _read_fresh(db, slot_id)
        logger.info("booked_count changed under reservation of slot %s (attempt %d)", slot_id, attempt)

    raise Conflict("This time slot is being booked by someone else, please try again")


def release(db: Session, slot_id: UUID, seats: int) -> Optional[TimeSlot]:
    """Give seats back, never dropping below zero. Returns None if the slot vanished."""
    for _ in range(MAX_CAS_ATTEMPTS):
        slot = db.query(TimeSlot).populate_existing().filter(TimeSlot.id == slot_id).first()
        if not slot:
            logger.warning("Cannot release %d seat(s): slot %s not found", seats, slot_id)
            return None
        seen = slot.booked_count or 0
        new_count = max(0, seen - seats)
        if _compare_and_swap(db, slot_id, seen, new_count, slot.capacity):
            return _read_fresh(db, slot_id)

    raise Conflict("Could not release seats on a busy time slot, please retry")