from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session

from icebath.api.deps import get_clock, get_current_admin_user, get_db, get_payment_gateway
from icebath.core.clock import Clock
from icebath.core.security import CurrentUser
from icebath.models.booking import Booking
from icebath.schemas.booking import (
    Booking as BookingSchema,
    BookingCancelRequest,
    BookingCancelResponse,
    RefundType,
)
from icebath.schemas.common import PaginatedResponse
from icebath.services.cancellation import cancel_booking
from icebath.services.payment_gateway import StripeGateway

router = APIRouter(prefix="/admin/bookings", tags=["Admin - Bookings"])


@router.get("", response_model=PaginatedResponse[BookingSchema])
def list_bookings(
    session_date: Optional[date] = Query(None, description="Only sessions on this date"),
    payment_status: Optional[str] = Query(None),
    booking_status: Optional[str] = Query(None),
    payment_method: Optional[str] = Query(None),
    email: Optional[str] = Query(None, description="Customer email (exact, case-insensitive)"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(get_current_admin_user),
):
    """All bookings with optional filters, latest session first."""
    query = db.query(Booking)
    if session_date:
        query = query.filter(Booking.session_date == session_date)
    if payment_status:
        query = query.filter(Booking.payment_status == payment_status)
    if booking_status:
        query = query.filter(Booking.booking_status == booking_status)
    if payment_method:
        query = query.filter(Booking.payment_method == payment_method)
    if email:
        query = query.filter(Booking.customer_email == email.strip().lower())

    total = query.count()
    bookings = (
        query.order_by(Booking.session_date.desc(), Booking.session_time.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return PaginatedResponse(
        data=bookings,
        total=total,
        page=page,
        limit=limit,
        total_pages=(total + limit - 1) // limit,
    )


@router.post("/{booking_id}/refund", response_model=BookingCancelResponse)
def refund_booking(
    booking_id: UUID,
    payload: Optional[BookingCancelRequest] = Body(default=None),
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(get_current_admin_user),
    clock: Clock = Depends(get_clock),
    gateway: StripeGateway = Depends(get_payment_gateway),
):
    """Cancel a card-paid booking and refund it (full by default, or 50%)."""
    refund_type = payload.refund_type if payload and payload.refund_type else RefundType.FULL
    result = cancel_booking(db, booking_id, clock, gateway, refund_type=refund_type.value, user=admin)
    return BookingCancelResponse(
        success=result.success,
        message=result.message,
        token_refunded=result.token_refunded,
        slots_freed=result.slots_freed,
        refund_status=result.refund_status,
        refund_error=result.refund_error,
    )
