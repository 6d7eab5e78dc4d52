from uuid import UUID
from typing import Optional

from fastapi import APIRouter, Body, Depends, status
from sqlalchemy.orm import Session

from icebath.api.deps import (
    get_clock,
    get_db,
    get_email_sender,
    get_optional_user,
    get_payment_gateway,
)
from icebath.core.clock import Clock
from icebath.core.exceptions import NotFound, Unauthorized
from icebath.core.security import CurrentUser
from icebath.models.booking import Booking
from icebath.schemas.booking import (
    Booking as BookingSchema,
    BookingCancelRequest,
    BookingCancelResponse,
    BookingCreate,
    BookingCreated,
    PaymentVerificationResponse,
)
from icebath.services.cancellation import cancel_booking
from icebath.services.email import ResendEmailSender
from icebath.services.orchestrator import create_booking
from icebath.services.payment_gateway import StripeGateway
from icebath.services.verification import verify_booking_payment

router = APIRouter(prefix="/bookings", tags=["Bookings"])


# ---------------------------------------------------------------------------
# POST /bookings: book a session (any payment mode)
# ---------------------------------------------------------------------------


@router.post("", response_model=BookingCreated, status_code=status.HTTP_201_CREATED)
def create(
    payload: BookingCreate,
    db: Session = Depends(get_db),
    user: Optional[CurrentUser] = Depends(get_optional_user),
    clock: Clock = Depends(get_clock),
    gateway: StripeGateway = Depends(get_payment_gateway),
    email_sender: ResendEmailSender = Depends(get_email_sender),
):
    """
    Book a communal or private session.

    Token, membership and fully covered credit bookings are confirmed
    immediately. Anything with money left to pay comes back pending with a
    ``redirectUrl`` to Stripe Checkout.
    """
    outcome = create_booking(db, payload, user, clock, gateway, email_sender)
    booking = outcome.booking
    return BookingCreated(
        booking_id=booking.id,
        booking_reference=booking.booking_reference,
        payment_status=booking.payment_status,
        booking_status=booking.booking_status,
        price_amount=booking.price_amount,
        discount_amount=booking.discount_amount,
        final_amount=booking.final_amount,
        credits_used=outcome.credits_used,
        redirect_url=outcome.redirect_url,
        tokens_remaining=outcome.tokens_remaining,
        sessions_remaining=outcome.sessions_remaining,
        email_sent=outcome.email_sent,
    )


# ---------------------------------------------------------------------------
# GET /bookings/{id}
# ---------------------------------------------------------------------------


@router.get("/{booking_id}", response_model=BookingSchema)
def get_booking(
    booking_id: UUID,
    db: Session = Depends(get_db),
    user: Optional[CurrentUser] = Depends(get_optional_user),
):
    booking = db.query(Booking).filter(Booking.id == booking_id).first()
    if not booking:
        raise NotFound("Booking not found")
    if booking.user_id is not None:
        if user is None:
            raise Unauthorized("Sign in to view this booking")
        if not user.is_admin and booking.user_id != user.id:
            raise NotFound("Booking not found")
    return booking


# ---------------------------------------------------------------------------
# POST /bookings/{id}/cancel
# ---------------------------------------------------------------------------


@router.post("/{booking_id}/cancel", response_model=BookingCancelResponse)
def cancel(
    booking_id: UUID,
    payload: Optional[BookingCancelRequest] = Body(default=None),
    db: Session = Depends(get_db),
    user: Optional[CurrentUser] = Depends(get_optional_user),
    clock: Clock = Depends(get_clock),
    gateway: StripeGateway = Depends(get_payment_gateway),
):
    """Cancel a booking, optionally refunding a card payment in full or by half."""
    refund_type = payload.refund_type.value if payload and payload.refund_type else None
    result = cancel_booking(db, booking_id, clock, gateway, refund_type=refund_type, user=user)
    return BookingCancelResponse(
        success=result.success,
        message=result.message,
        token_refunded=result.token_refunded,
        slots_freed=result.slots_freed,
        refund_status=result.refund_status,
        refund_error=result.refund_error,
    )


# ---------------------------------------------------------------------------
# POST /bookings/{id}/verify-payment
# ---------------------------------------------------------------------------


@router.post("/{booking_id}/verify-payment", response_model=PaymentVerificationResponse)
def verify_payment(
    booking_id: UUID,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    gateway: StripeGateway = Depends(get_payment_gateway),
):
    result = verify_booking_payment(db, booking_id, clock, gateway)
    return PaymentVerificationResponse(
        success=result.success,
        status=result.status,
        message=result.message,
        stripe_status=result.stripe_status,
    )
