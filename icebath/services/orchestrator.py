"""
Booking transaction orchestrator.

One entry point for every way of paying for a session. The request moves
through slot validation, entitlement checks and pricing before anything is
written; then either

* nothing is left to pay: seats, entitlements and the paid booking are
  committed in one transaction, or
* money is owed: seats (and any store credit, or the session of a member
  bringing paying guests) are held on a pending booking, committed, and a
  Stripe Checkout session is opened. If Stripe fails the hold is compensated
  and the caller gets UpstreamFailure.

``confirm_booking`` is the out-of-band half of the second path, called by the
webhook and by manual payment verification.
"""

import logging
import random
import string
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from icebath.core.clock import Clock
from icebath.core.config import settings
from icebath.core.exceptions import (
    Conflict,
    InsufficientFunds,
    InvalidInput,
    NotFound,
    Unauthorized,
    UpstreamFailure,
)
from icebath.core.security import CurrentUser
from icebath.models.booking import Booking
from icebath.schemas.booking import BookingCreate
from icebath.services import entitlements, ledger, pricing
from icebath.services.cancellation import abandon_booking
from icebath.services.email import ResendEmailSender, send_booking_confirmation
from icebath.services.entitlements import CreditPlan, format_pence
from icebath.services.payment_gateway import StripeGateway
from icebath.utils.timeslots import is_within_business_hours

logger = logging.getLogger(__name__)

FREE_MODES = ("token", "membership")


@dataclass
class BookingOutcome:
    booking: Booking
    redirect_url: Optional[str] = None
    credits_used: int = 0
    tokens_remaining: Optional[int] = None
    sessions_remaining: Optional[int] = None
    email_sent: Optional[bool] = None


@dataclass
class _Quote:
    price: int
    covered: int = 0  # paid for by a token or membership session
    code_discount: int = 0
    discount_code_id: Optional[UUID] = None
    partner_code_id: Optional[UUID] = None
    credit_plan: Optional[CreditPlan] = None

    @property
    def credit_amount(self) -> int:
        return self.credit_plan.amount_covered if self.credit_plan else 0

    @property
    def payable(self) -> int:
        return max(0, self.price - self.covered - self.code_discount - self.credit_amount)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _generate_booking_reference(db: Session) -> str:
    """Generate a unique 'IB-XXXXXXXX' booking reference."""
    chars = string.ascii_uppercase + string.digits
    while True:
        reference = "IB-" + "".join(random.choices(chars, k=8))
        if not db.query(Booking.id).filter(Booking.booking_reference == reference).first():
            return reference


def _free_session_conflict(existing: Booking) -> Conflict:
    at = existing.session_time.strftime("%H:%M")
    return Conflict(
        f"You've already used a free session on this date at {at}. "
        "You can only use 1 token per day. Please choose a different date or pay for this session.",
        details={"existing_booking_id": str(existing.id), "existing_time": at},
    )


def _guard_free_per_day(db: Session, email: str, slot) -> None:
    existing = entitlements.has_used_free_entitlement_today(db, email, slot.slot_date)
    if existing:
        raise _free_session_conflict(existing)


def _validate_slot_date(slot, clock: Clock) -> None:
    today = clock.today()
    if slot.slot_date < today:
        raise InvalidInput("Cannot book a session in the past")
    if slot.slot_date > today + timedelta(days=settings.BOOKING_WINDOW_DAYS):
        raise InvalidInput(f"Sessions can only be booked up to {settings.BOOKING_WINDOW_DAYS} days ahead")
    if not is_within_business_hours(slot.slot_date, slot.slot_time):
        raise NotFound("Time slot is outside opening hours")


def _build_booking(db: Session, request: BookingCreate, user: Optional[CurrentUser], slot, booking_type: str,
                   guest_count: int, mode: str, quote: _Quote) -> Booking:
    return Booking(
        booking_reference=_generate_booking_reference(db),
        user_id=user.id if user else None,
        customer_name=request.customer_name,
        customer_email=request.customer_email,
        customer_phone=request.customer_phone,
        time_slot_id=slot.id,
        session_date=slot.slot_date,
        session_time=slot.slot_time,
        service_type=slot.service_type,
        duration_minutes=settings.SESSION_DURATION_MINUTES,
        booking_type=booking_type,
        guest_count=guest_count,
        price_amount=quote.price,
        discount_amount=quote.price - quote.payable,
        credit_amount=quote.credit_amount,
        final_amount=quote.payable,
        discount_code_id=quote.discount_code_id,
        partner_code_id=quote.partner_code_id,
        payment_method=mode,
        special_requests=request.special_requests,
    )


# ---------------------------------------------------------------------------
# create_booking
# ---------------------------------------------------------------------------


def create_booking(
    db: Session,
    request: BookingCreate,
    user: Optional[CurrentUser],
    clock: Clock,
    gateway: StripeGateway,
    email_sender: Optional[ResendEmailSender] = None,
) -> BookingOutcome:
    mode = request.payment_mode.value
    booking_type = request.booking_type.value
    guest_count = request.guest_count
    email = request.customer_email
    now = clock.now()

    # Mode rules that need no database
    if mode in FREE_MODES:
        if booking_type == "private":
            raise InvalidInput(f"Private sessions cannot be booked with a {mode}")
        # A token or membership covers one person; members may add guests who pay by card
        guest_count = 1 + (request.paying_guest_count if mode == "membership" else 0)
    if mode in ("membership", "credit") and user is None:
        raise Unauthorized(f"Sign in to book with your {mode}")
    if mode == "gateway" and request.apply_credit and user is None:
        raise Unauthorized("Sign in to use your credit")

    # 1-2. Slot and capacity
    slot = ledger.get_slot(db, request.time_slot_id)
    _validate_slot_date(slot, clock)
    ledger.check_capacity(db, slot, booking_type, guest_count)

    # 3. Free-entitlement checks
    membership = None
    if mode in FREE_MODES:
        _guard_free_per_day(db, email, slot)
    if mode == "token":
        if not entitlements.resolve_tokens(db, email, now):
            raise InsufficientFunds(
                "No valid tokens available. Please purchase more sessions or use standard booking."
            )
    elif mode == "membership":
        membership = entitlements.resolve_membership(db, user.id, clock.today())
        if membership is None:
            raise NotFound("No active membership found")
        if not membership.can_book:
            raise InsufficientFunds("No sessions remaining this week. Your credits reset every Monday.")

    # 4-5. Price, then code, then credit
    quote = _Quote(price=pricing.base_price(db, booking_type, guest_count))
    if mode in FREE_MODES:
        if request.discount_code:
            logger.info("Ignoring discount code %s on a %s booking", request.discount_code, mode)
        quote.covered = pricing.base_price(db, booking_type, 1)
    else:
        if request.discount_code:
            code = entitlements.resolve_discount_code(db, request.discount_code, quote.price, now)
            quote.code_discount = code.discount_amount
            quote.discount_code_id = code.discount_code_id
            quote.partner_code_id = code.partner_code_id
        if mode == "credit" or request.apply_credit:
            credits = entitlements.resolve_credits(db, user.id, now)
            owed = quote.price - quote.code_discount
            quote.credit_plan = entitlements.consume_credits(credits, owed)
            if mode == "credit" and quote.credit_amount < owed:
                raise InsufficientFunds(
                    f"Insufficient credit. You have {format_pence(quote.credit_amount)} "
                    f"but this session costs {format_pence(owed)}.",
                    details={"balance": quote.credit_amount, "required": owed},
                )

    if quote.payable == 0:
        return _commit_free_booking(
            db, request, user, slot, booking_type, guest_count, mode, quote, membership, clock, email_sender
        )
    return _start_checkout(db, request, user, slot, booking_type, guest_count, mode, quote, membership, clock, gateway)


def _commit_free_booking(db, request, user, slot, booking_type, guest_count, mode, quote, membership, clock,
                         email_sender) -> BookingOutcome:
    """Nothing to pay: one transaction for seats, entitlement and the paid booking."""
    now = clock.now()
    if mode not in FREE_MODES:
        _guard_free_per_day(db, request.customer_email, slot)
        if quote.credit_amount:
            mode = "credit"

    try:
        ledger.reserve(db, slot.id, booking_type, guest_count)
        booking = _build_booking(db, request, user, slot, booking_type, guest_count, mode, quote)
        booking.payment_status = "paid"
        booking.booking_status = "confirmed"
        db.add(booking)
        db.flush()

        if mode == "token":
            booking.token_id = entitlements.consume_token(db, request.customer_email, now).id
        elif mode == "membership":
            entitlements.consume_membership_session(db, membership, now)
            booking.membership_id = membership.membership.id
        if quote.credit_plan and quote.credit_plan.deductions:
            entitlements.apply_credit_plan(db, booking, quote.credit_plan, now)
        entitlements.record_code_redemption(db, booking)

        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(booking)
    logger.info("Booking %s confirmed via %s (%s)", booking.booking_reference, mode, booking.customer_email)

    outcome = BookingOutcome(booking=booking, credits_used=quote.credit_amount)
    note = None
    if mode == "token":
        outcome.tokens_remaining = entitlements.remaining_tokens(db, booking.customer_email, now)
        note = f"You have {outcome.tokens_remaining} session token(s) remaining."
    elif mode == "membership":
        db.refresh(membership.membership)
        outcome.sessions_remaining = (
            membership.membership.sessions_per_week if membership.is_unlimited
            else membership.membership.sessions_remaining
        )
        note = None if membership.is_unlimited else f"You have {outcome.sessions_remaining} session(s) left this week."

    if email_sender is not None:
        outcome.email_sent = send_booking_confirmation(email_sender, booking, note)
        if not outcome.email_sent:
            logger.warning("Confirmation email for %s was not sent", booking.booking_reference)
    return outcome


def _start_checkout(db, request, user, slot, booking_type, guest_count, mode, quote, membership, clock,
                    gateway) -> BookingOutcome:
    """
    Money owed: hold seats, credit and (for a member bringing guests) the
    member's session on a pending booking, then open Checkout.
    """
    now = clock.now()
    try:
        ledger.reserve(db, slot.id, booking_type, guest_count)
        booking = _build_booking(db, request, user, slot, booking_type, guest_count, mode, quote)
        booking.payment_status = "pending"
        booking.booking_status = "pending"
        db.add(booking)
        db.flush()
        if membership is not None:
            entitlements.consume_membership_session(db, membership, now)
            booking.membership_id = membership.membership.id
        if quote.credit_plan and quote.credit_plan.deductions:
            entitlements.apply_credit_plan(db, booking, quote.credit_plan, now)
        db.commit()
    except Exception:
        db.rollback()
        raise

    when = f"{slot.slot_date.isoformat()} {slot.slot_time.strftime('%H:%M')}"
    paying_guests = guest_count - 1
    if membership is not None:
        label = f"Member + {paying_guests} paying guest{'s' if paying_guests != 1 else ''}"
    elif booking_type == "private":
        label = "Private session"
    else:
        label = f"Communal session x{guest_count}"
    if quote.credit_amount:
        label += f" ({format_pence(quote.credit_amount)} credit applied)"
    metadata = {
        "type": "booking",
        "booking_id": str(booking.id),
        "time_slot_id": str(slot.id),
        "booking_type": booking_type,
        "guest_count": str(guest_count),
    }
    if membership is not None:
        metadata["membership_id"] = str(membership.membership.id)
        metadata["paying_guest_count"] = str(paying_guests)
    try:
        checkout = gateway.create_checkout_session(
            amount=quote.payable,
            product_name=f"Ice bath & sauna - {label}",
            description=when,
            customer_email=request.customer_email,
            metadata=metadata,
            success_url=f"{settings.SITE_URL}/booking-success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{settings.SITE_URL}/booking",
        )
    except UpstreamFailure:
        logger.error("Checkout failed for booking %s, releasing its hold", booking.booking_reference)
        try:
            abandon_booking(db, booking, now)
            db.commit()
        except Exception:
            db.rollback()
            logger.exception("Could not compensate booking %s after checkout failure", booking.id)
        raise

    booking.stripe_session_id = checkout.id
    db.commit()
    db.refresh(booking)
    logger.info(
        "Booking %s awaiting payment of %s (session %s)",
        booking.booking_reference, format_pence(quote.payable), checkout.id,
    )
    outcome = BookingOutcome(booking=booking, redirect_url=checkout.url, credits_used=quote.credit_amount)
    if membership is not None:
        db.refresh(membership.membership)
        outcome.sessions_remaining = (
            membership.membership.sessions_per_week if membership.is_unlimited
            else membership.membership.sessions_remaining
        )
    return outcome


# ---------------------------------------------------------------------------
# confirm_booking
# ---------------------------------------------------------------------------


def _reapply_holds(db: Session, booking: Booking, clock: Clock) -> None:
    """Take back the credit and membership session an abandoned hold had returned."""
    now = clock.now()
    if booking.credit_amount and booking.user_id:
        plan = entitlements.consume_credits(
            entitlements.resolve_credits(db, booking.user_id, now), booking.credit_amount
        )
        entitlements.apply_credit_plan(db, booking, plan, now)
        if plan.amount_covered < booking.credit_amount:
            logger.warning(
                "Booking %s revived with only %s of %s credit re-applied",
                booking.booking_reference, format_pence(plan.amount_covered), format_pence(booking.credit_amount),
            )
    if booking.membership_id and booking.user_id:
        membership = entitlements.resolve_membership(db, booking.user_id, clock.today())
        if membership is None or membership.membership.id != booking.membership_id:
            logger.warning("Booking %s revived but its membership is no longer active", booking.booking_reference)
            return
        try:
            entitlements.consume_membership_session(db, membership, now)
        except InsufficientFunds:
            logger.warning("Booking %s revived without a membership session left to take", booking.booking_reference)


def confirm_booking(
    db: Session,
    stripe_session_id: str,
    time_slot_id: Optional[UUID],
    clock: Clock,
) -> Tuple[Booking, bool]:
    """
    Mark the booking behind a completed Checkout session as paid.

    Returns ``(booking, changed)``; ``changed`` is False when it was already
    paid. Seats were counted when the booking went pending and are not
    counted again, unless the hold had been abandoned in the meantime, in
    which case they are reserved afresh. If the slot has filled up by then
    the booking stays cancelled but is recorded as paid, and the caller is
    expected to refund it (``refund_unplaced_payment``).
    Flushes only; the caller commits.
    """
    booking = db.query(Booking).filter(Booking.stripe_session_id == stripe_session_id).first()
    if not booking:
        raise NotFound("Booking not found for this payment session")
    if time_slot_id is not None and booking.time_slot_id != time_slot_id:
        raise InvalidInput("Payment session does not match the booked time slot")

    if booking.payment_status == "paid":
        return booking, False
    if booking.payment_status in ("refunded", "partial_refund"):
        logger.warning("Ignoring confirmation of refunded booking %s", booking.booking_reference)
        return booking, False

    now = clock.now()
    if booking.booking_status == "cancelled":
        try:
            ledger.reserve(db, booking.time_slot_id, booking.booking_type, booking.guest_count)
        except Conflict as e:
            logger.warning(
                "Late payment for cancelled booking %s cannot be seated: %s",
                booking.booking_reference, e.message,
            )
            booking.payment_status = "paid"
            booking.updated_at = now
            db.flush()
            return booking, True
        logger.info("Reviving abandoned booking %s after late payment", booking.booking_reference)
        _reapply_holds(db, booking, clock)
        booking.cancelled_at = None

    booking.payment_status = "paid"
    booking.booking_status = "confirmed"
    booking.updated_at = now
    entitlements.record_code_redemption(db, booking, strict=False)
    db.flush()
    logger.info("Booking %s paid (session %s)", booking.booking_reference, stripe_session_id)
    return booking, True
