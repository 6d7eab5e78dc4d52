from typing import List
from pydantic import UUID4
from datetime import date, time

from icebath.schemas.common import CamelModel


# Time Slot: DB response with live availability
class TimeSlot(CamelModel):
    id: UUID4
    slot_date: date
    slot_time: time
    service_type: str
    capacity: int
    booked_count: int = 0
    is_available: bool = True
    available_seats: int
    has_private_hold: bool = False


# Response for GET /time-slots?date=
class TimeSlotListResponse(CamelModel):
    slot_date: date
    service_type: str
    time_slots: List[TimeSlot]


# Admin slot generation across a date range
class TimeSlotGenerate(CamelModel):
    date_from: date
    date_to: date
    service_type: str = "combined"


class TimeSlotGenerateResult(CamelModel):
    created: int
    skipped: int
