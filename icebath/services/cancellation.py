"""
Cancellation and refund reconciler.

A cancellation is committed first (status, seats, entitlements) and the
Stripe refund is attempted afterwards. A refund failure is reported on the
result and logged; the cancellation itself stands.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from icebath.core.clock import Clock, as_utc
from icebath.core.exceptions import InvalidInput, NotFound, Unauthorized, UpstreamFailure
from icebath.core.security import CurrentUser
from icebath.models.booking import Booking
from icebath.models.time_slot import TimeSlot
from icebath.services import entitlements, ledger
from icebath.services.payment_gateway import StripeGateway

logger = logging.getLogger(__name__)

SEAT_HOLDING_STATUSES = ("paid", "pending")


@dataclass
class CancellationResult:
    success: bool
    message: str
    token_refunded: bool = False
    slots_freed: int = 0
    refund_status: Optional[str] = None
    refund_error: Optional[str] = None


def _holds_seats(booking: Booking) -> bool:
    return booking.booking_status != "cancelled" and booking.payment_status in SEAT_HOLDING_STATUSES


def _release_seats(db: Session, booking: Booking) -> int:
    if not _holds_seats(booking):
        return 0
    slot = db.query(TimeSlot).filter(TimeSlot.id == booking.time_slot_id).first()
    if not slot:
        logger.warning("Booking %s points at a missing time slot %s", booking.id, booking.time_slot_id)
        return 0
    seats = ledger.seats_held(booking.booking_type, booking.guest_count, slot.capacity)
    ledger.release(db, slot.id, seats)
    return seats


def _return_holds(db: Session, booking: Booking, now: datetime) -> None:
    """Give back what a pending booking took up front: credit and a member's session."""
    if booking.credit_deductions:
        entitlements.restore_credits(db, booking, now)
        booking.credit_deductions.clear()
    if booking.membership_id:
        entitlements.restore_membership_session(db, booking.membership_id, now)


def _is_refundable(booking: Booking) -> bool:
    return booking.payment_status == "paid" and bool(booking.final_amount) and bool(booking.stripe_session_id)


def abandon_booking(db: Session, booking: Booking, now: datetime) -> int:
    """
    Drop an unpaid booking's hold: free its seats, give back any credit or
    membership session it reserved and mark it cancelled. Flushes only.
    Returns seats freed.
    """
    freed = _release_seats(db, booking)
    _return_holds(db, booking, now)
    booking.payment_status = "cancelled"
    booking.booking_status = "cancelled"
    booking.cancelled_at = now
    db.flush()
    return freed


def _check_access(booking: Booking, user: Optional[CurrentUser]) -> None:
    if user is None:
        if booking.user_id is not None:
            raise Unauthorized("Sign in to cancel this booking")
        return
    if user.is_admin:
        return
    if booking.user_id != user.id and booking.customer_email != user.email:
        raise NotFound("Booking not found")


def cancel_booking(
    db: Session,
    booking_id: UUID,
    clock: Clock,
    gateway: StripeGateway,
    refund_type: Optional[str] = None,
    user: Optional[CurrentUser] = None,
) -> CancellationResult:
    booking = db.query(Booking).filter(Booking.id == booking_id).first()
    if not booking:
        raise NotFound("Booking not found")
    _check_access(booking, user)

    if booking.booking_status == "cancelled":
        result = CancellationResult(success=True, message="Booking already cancelled")
        # Card money can still be sitting on a cancelled booking (late payment, refund declined)
        if refund_type is not None and _is_refundable(booking):
            _refund(db, booking, refund_type, gateway, result)
        return result

    if refund_type is not None and not _is_refundable(booking):
        raise InvalidInput("Only bookings paid by card can be refunded")

    now = clock.now()
    result = CancellationResult(success=True, message="Booking cancelled successfully")
    try:
        result.slots_freed = _release_seats(db, booking)

        if booking.payment_status == "paid":
            if booking.payment_method == "token":
                entitlements.restock_token(db, booking.customer_email, now)
                result.token_refunded = True
            elif booking.payment_method == "membership" and booking.membership_id:
                entitlements.restore_membership_session(db, booking.membership_id, now)
            if booking.credit_deductions and booking.payment_method != "gateway":
                entitlements.restore_credits(db, booking, now)
        elif booking.payment_status == "pending":
            _return_holds(db, booking, now)
            booking.payment_status = "cancelled"

        booking.booking_status = "cancelled"
        booking.cancelled_at = now
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Booking %s cancelled, %d seat(s) freed", booking.booking_reference, result.slots_freed)

    if refund_type is not None:
        _refund(db, booking, refund_type, gateway, result)
    return result


def _refund(db: Session, booking: Booking, refund_type: str, gateway: StripeGateway,
            result: CancellationResult) -> None:
    # Half refunds round halves up, as percent_of does
    amount = None if refund_type == "full" else (booking.final_amount + 1) // 2
    try:
        session = gateway.retrieve_session(booking.stripe_session_id)
        if not session.payment_intent:
            raise UpstreamFailure("No payment found for this booking")
        gateway.refund(session.payment_intent, amount)
    except UpstreamFailure as e:
        logger.error("Refund for cancelled booking %s failed: %s", booking.booking_reference, e.message)
        result.refund_status = "failed"
        result.refund_error = e.message
        result.message = "Booking cancelled but the refund failed"
        return

    booking.payment_status = "refunded" if refund_type == "full" else "partial_refund"
    db.commit()
    result.refund_status = booking.payment_status
    refunded = booking.final_amount if amount is None else amount
    result.message = f"Booking cancelled and {entitlements.format_pence(refunded)} refunded"


def refund_unplaced_payment(db: Session, booking: Booking, gateway: StripeGateway) -> CancellationResult:
    """
    Full refund for a payment that arrived after its booking was cancelled and
    whose seats have gone. On failure the booking stays paid for staff to refund.
    """
    result = CancellationResult(success=False, message="Payment received but the session is full")
    _refund(db, booking, "full", gateway, result)
    if result.refund_status == "refunded":
        result.message = (
            f"The session filled up before payment arrived; "
            f"{entitlements.format_pence(booking.final_amount)} refunded"
        )
    else:
        logger.warning(
            "Booking %s holds a payment with no seat and needs a manual refund",
            booking.booking_reference,
        )
    return result


def expire_pending_bookings(db: Session, now: datetime, ttl_minutes: int) -> int:
    """Abandon pending bookings older than ``ttl_minutes``. Commits; returns how many."""
    cutoff = now - timedelta(minutes=ttl_minutes)
    stale = [
        b for b in db.query(Booking).filter(
            Booking.payment_status == "pending",
            Booking.booking_status != "cancelled",
        )
        if b.created_at is not None and as_utc(b.created_at) < cutoff
    ]
    for booking in stale:
        abandon_booking(db, booking, now)
        logger.info("Released stale pending booking %s", booking.booking_reference)
    if stale:
        db.commit()
    return len(stale)
