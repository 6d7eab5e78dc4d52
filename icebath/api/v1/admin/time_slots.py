import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from icebath.api.deps import get_current_admin_user, get_db
from icebath.core.exceptions import InvalidInput
from icebath.core.security import CurrentUser
from icebath.schemas.time_slot import TimeSlotGenerate, TimeSlotGenerateResult
from icebath.utils.timeslots import generate_range

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/time-slots", tags=["Admin - Time Slots"])

MAX_GENERATE_DAYS = 92


# ---------------------------------------------------------------------------
# Bulk generation
# ---------------------------------------------------------------------------


@router.post("/generate", response_model=TimeSlotGenerateResult, status_code=status.HTTP_201_CREATED)
def generate_time_slots(
    data: TimeSlotGenerate,
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(get_current_admin_user),
):
    """
    Create every missing session between ``dateFrom`` and ``dateTo``
    inclusive. Existing slots (and their bookings) are left alone.
    """
    if data.date_to < data.date_from:
        raise InvalidInput("dateTo must not be before dateFrom")
    if (data.date_to - data.date_from).days >= MAX_GENERATE_DAYS:
        raise InvalidInput(f"Generate at most {MAX_GENERATE_DAYS} days at a time")

    try:
        created, skipped = generate_range(db, data.date_from, data.date_to, data.service_type)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("Admin %s generated %d slot(s), %d already existed", admin.email, created, skipped)
    return TimeSlotGenerateResult(created=created, skipped=skipped)
