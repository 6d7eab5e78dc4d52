import logging
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from icebath.core.clock import Clock
from icebath.core.exceptions import NotFound, UpstreamFailure
from icebath.models.booking import Booking
from icebath.models.customer import AuditLog
from icebath.services.cancellation import refund_unplaced_payment
from icebath.services.orchestrator import confirm_booking
from icebath.services.payment_gateway import StripeGateway

logger = logging.getLogger(__name__)


@dataclass
class VerificationResult:
    success: bool
    status: str
    message: str
    stripe_status: Optional[str] = None


def verify_booking_payment(db: Session, booking_id: UUID, clock: Clock, gateway: StripeGateway) -> VerificationResult:
    """
    Recover a booking whose webhook never arrived by asking Stripe directly.

    Read-only unless Stripe reports the session paid.
    """
    booking = db.query(Booking).filter(Booking.id == booking_id).first()
    if not booking:
        raise NotFound("Booking not found")

    if booking.payment_status == "paid":
        return VerificationResult(success=True, status="already_paid", message="Booking is already marked as paid")

    if booking.payment_status in ("refunded", "partial_refund"):
        return VerificationResult(success=False, status="refunded", message="This booking's payment was refunded")

    if not booking.stripe_session_id:
        return VerificationResult(
            success=False,
            status="no_stripe_session",
            message="No Stripe session found for this booking. Cannot verify payment.",
        )

    try:
        session = gateway.retrieve_session(booking.stripe_session_id)
    except UpstreamFailure as e:
        return VerificationResult(success=False, status="stripe_error", message=e.message)

    if session.payment_status == "paid":
        try:
            booking, changed = confirm_booking(db, booking.stripe_session_id, booking.time_slot_id, clock)
            db.add(AuditLog(
                action="MANUAL_PAYMENT_VERIFICATION",
                table_name="bookings",
                record_id=booking.id,
                new_values={
                    "payment_status": booking.payment_status,
                    "booking_status": booking.booking_status,
                    "stripe_session_id": booking.stripe_session_id,
                    "verified_at": clock.now().isoformat(),
                },
            ))
            db.commit()
        except Exception:
            db.rollback()
            raise

        if booking.booking_status == "cancelled":
            refund = refund_unplaced_payment(db, booking, gateway) if changed else None
            return VerificationResult(
                success=False,
                status="slot_unavailable",
                message=refund.message if refund else "Payment received but the session is full",
                stripe_status=session.payment_status,
            )
        logger.info("Recovered payment for booking %s", booking.booking_reference)
        return VerificationResult(
            success=True,
            status="payment_confirmed",
            message="Payment verified and booking confirmed",
            stripe_status=session.payment_status,
        )

    if session.payment_status == "unpaid":
        return VerificationResult(
            success=False,
            status="unpaid",
            message="Payment has not been completed in Stripe",
            stripe_status=session.payment_status,
        )

    return VerificationResult(
        success=False,
        status="other",
        message=f"Stripe payment status: {session.payment_status}",
        stripe_status=session.payment_status,
    )
