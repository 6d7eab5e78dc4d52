from datetime import date as date_type
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from icebath.api.deps import get_clock, get_db
from icebath.core.clock import Clock
from icebath.core.config import settings
from icebath.services import ledger
from icebath.schemas.time_slot import TimeSlot as TimeSlotSchema, TimeSlotListResponse

router = APIRouter(prefix="/time-slots", tags=["Time Slots"])


# ---------------------------------------------------------------------------
# Public: a day's sessions with live availability (date picker screen)
# ---------------------------------------------------------------------------


@router.get("", response_model=TimeSlotListResponse)
def list_time_slots(
    date: Optional[date_type] = Query(None, description="Session date (YYYY-MM-DD), defaults to today"),
    service_type: Optional[str] = Query(None, description="Service type, defaults to combined"),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """
    Return every session of the day, generating the day's slots on first
    request. Closed days return an empty list.
    """
    day = date or clock.today()
    service = service_type or settings.DEFAULT_SERVICE_TYPE

    slots = ledger.get_day_slots(db, day, service)
    db.commit()

    out = []
    for slot in slots:
        availability = ledger.compute_availability(db, slot)
        remaining = min(availability.available_seats, max(0, slot.capacity - (slot.booked_count or 0)))
        out.append(TimeSlotSchema(
            id=slot.id,
            slot_date=slot.slot_date,
            slot_time=slot.slot_time,
            service_type=slot.service_type,
            capacity=slot.capacity,
            booked_count=slot.booked_count or 0,
            is_available=slot.is_available and remaining > 0,
            available_seats=remaining,
            has_private_hold=availability.has_private_hold,
        ))

    return TimeSlotListResponse(slot_date=day, service_type=service, time_slots=out)
