"""
Entitlement resolver: tokens, memberships, store credit and promo codes.

Reads return grants in the order they should be spent (soonest expiry first).
Writes are conditional UPDATEs on the grant row so a balance can never go
negative when two bookings spend from it at once.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import and_, func, or_
from sqlalchemy.orm import Session

from icebath.core.clock import as_utc
from icebath.core.exceptions import InsufficientFunds, InvalidInput
from icebath.models.booking import Booking, BookingCreditDeduction
from icebath.models.entitlement import CustomerCredit, CustomerToken, Membership
from icebath.models.promotion import DiscountCode, DiscountRedemption, PartnerCode

logger = logging.getLogger(__name__)


def format_pence(amount: int) -> str:
    return f"£{amount / 100:.2f}"


def percent_of(base: int, pct: int) -> int:
    """round(base * pct / 100) with halves rounded up, in integer pence."""
    return (base * pct + 50) // 100


@dataclass
class MembershipEntitlement:
    membership: Membership
    sessions_remaining: int
    is_unlimited: bool

    @property
    def can_book(self) -> bool:
        return self.is_unlimited or self.sessions_remaining > 0


@dataclass
class DiscountQuote:
    code: str
    discount_amount: int
    discount_code_id: Optional[UUID] = None
    partner_code_id: Optional[UUID] = None


@dataclass
class CreditPlan:
    amount_covered: int = 0
    deductions: List[Tuple[UUID, int]] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


def resolve_tokens(db: Session, customer_email: str, now: datetime) -> List[CustomerToken]:
    """Non-expired token grants with tokens left, soonest expiry first (never-expiring last)."""
    return (
        db.query(CustomerToken)
        .filter(
            CustomerToken.customer_email == customer_email.strip().lower(),
            CustomerToken.tokens_remaining > 0,
            or_(CustomerToken.expires_at.is_(None), CustomerToken.expires_at > now),
        )
        .order_by(CustomerToken.expires_at.is_(None), CustomerToken.expires_at, CustomerToken.created_at)
        .all()
    )


def resolve_membership(db: Session, user_id: UUID, today: date) -> Optional[MembershipEntitlement]:
    membership = (
        db.query(Membership)
        .filter(
            Membership.user_id == user_id,
            Membership.status == "active",
            Membership.end_date >= today,
        )
        .order_by(Membership.created_at.desc())
        .first()
    )
    if not membership:
        return None
    unlimited = membership.is_unlimited
    return MembershipEntitlement(
        membership=membership,
        sessions_remaining=membership.sessions_per_week if unlimited else (membership.sessions_remaining or 0),
        is_unlimited=unlimited,
    )


def resolve_credits(db: Session, user_id: UUID, now: datetime) -> List[CustomerCredit]:
    return (
        db.query(CustomerCredit)
        .filter(
            CustomerCredit.user_id == user_id,
            CustomerCredit.credit_balance > 0,
            CustomerCredit.expires_at > now,
        )
        .order_by(CustomerCredit.expires_at, CustomerCredit.created_at)
        .all()
    )


def resolve_discount_code(db: Session, code: str, base_amount: int, now: datetime) -> DiscountQuote:
    """
    Price a promo code against ``base_amount``.

    Discount codes win over partner codes with the same text. Raises
    InvalidInput for unknown, inactive, out-of-window, exhausted or
    below-minimum codes.
    """
    normalized = (code or "").strip().upper()
    if not normalized:
        raise InvalidInput("Discount code is empty")

    dc = db.query(DiscountCode).filter(DiscountCode.code == normalized).first()
    if dc and dc.is_active:
        valid_from = as_utc(dc.valid_from)
        valid_until = as_utc(dc.valid_until)
        if valid_from and now < valid_from:
            raise InvalidInput("This discount code is not valid yet")
        if valid_until and now > valid_until:
            raise InvalidInput("This discount code has expired")
        if dc.max_uses is not None and (dc.current_uses or 0) >= dc.max_uses:
            raise InvalidInput("This discount code has reached its usage limit")
        if dc.min_amount and base_amount < dc.min_amount:
            raise InvalidInput(f"This discount code requires a minimum spend of {format_pence(dc.min_amount)}")

        if dc.discount_type == "percentage":
            amount = percent_of(base_amount, dc.discount_value)
        elif dc.discount_type == "fixed":
            amount = min(base_amount, dc.discount_value)
        else:
            raise InvalidInput("This discount code is misconfigured")
        return DiscountQuote(code=normalized, discount_amount=min(amount, base_amount), discount_code_id=dc.id)

    pc = (
        db.query(PartnerCode)
        .filter(PartnerCode.promo_code == normalized, PartnerCode.is_active == True)  # noqa: E712
        .first()
    )
    if pc:
        amount = percent_of(base_amount, pc.discount_percentage)
        return DiscountQuote(code=normalized, discount_amount=min(amount, base_amount), partner_code_id=pc.id)

    raise InvalidInput("Invalid discount code")


def has_used_free_entitlement_today(db: Session, customer_email: str, day: date) -> Optional[Booking]:
    """
    The booking that already used this customer's free session on ``day``,
    if any. Any paid booking with nothing charged counts, whatever funded it,
    and so does a member's booking with paying guests, even while pending.
    """
    return (
        db.query(Booking)
        .filter(
            Booking.customer_email == customer_email.strip().lower(),
            Booking.session_date == day,
            Booking.booking_status != "cancelled",
            or_(
                and_(
                    Booking.payment_status == "paid",
                    or_(Booking.final_amount == 0, Booking.final_amount.is_(None)),
                ),
                and_(
                    Booking.payment_status.in_(("paid", "pending")),
                    Booking.membership_id.isnot(None),
                ),
            ),
        )
        .order_by(Booking.session_time)
        .first()
    )


def consume_credits(credits: List[CustomerCredit], amount_needed: int) -> CreditPlan:
    """Greedy oldest-expiry-first plan. Never takes more than a grant holds or than is needed."""
    plan = CreditPlan()
    remaining = max(0, amount_needed)
    for credit in credits:
        if remaining <= 0:
            break
        deduction = min(credit.credit_balance, remaining)
        if deduction <= 0:
            continue
        plan.deductions.append((credit.id, deduction))
        plan.amount_covered += deduction
        remaining -= deduction
    return plan


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


def consume_token(db: Session, customer_email: str, now: datetime) -> CustomerToken:
    """Spend one token from the soonest-expiring grant."""
    for token in resolve_tokens(db, customer_email, now):
        updated = (
            db.query(CustomerToken)
            .filter(CustomerToken.id == token.id, CustomerToken.tokens_remaining > 0)
            .update(
                {"tokens_remaining": CustomerToken.tokens_remaining - 1, "updated_at": now},
                synchronize_session="fetch",
            )
        )
        if updated == 1:
            return token
        logger.info("Token grant %s emptied concurrently, trying the next one", token.id)

    raise InsufficientFunds(
        "No valid tokens available. Please purchase more sessions or use standard booking."
    )


def consume_membership_session(db: Session, entitlement: MembershipEntitlement, now: datetime) -> None:
    if entitlement.is_unlimited:
        return
    updated = (
        db.query(Membership)
        .filter(Membership.id == entitlement.membership.id, Membership.sessions_remaining > 0)
        .update(
            {"sessions_remaining": Membership.sessions_remaining - 1, "updated_at": now},
            synchronize_session="fetch",
        )
    )
    if updated != 1:
        raise InsufficientFunds("No sessions remaining this week. Your credits reset every Monday.")


def apply_credit_plan(db: Session, booking: Booking, plan: CreditPlan, now: datetime) -> None:
    """Deduct each planned amount and remember it against the booking for refunds."""
    for credit_id, amount in plan.deductions:
        updated = (
            db.query(CustomerCredit)
            .filter(CustomerCredit.id == credit_id, CustomerCredit.credit_balance >= amount)
            .update(
                {"credit_balance": CustomerCredit.credit_balance - amount, "updated_at": now},
                synchronize_session="fetch",
            )
        )
        if updated != 1:
            raise InsufficientFunds("Your credit balance changed while booking, please try again")
        booking.credit_deductions.append(BookingCreditDeduction(credit_id=credit_id, amount=amount))


def restock_token(db: Session, customer_email: str, now: datetime) -> CustomerToken:
    """
    Put one token back: onto the earliest-expiring live grant, or a fresh
    one-token grant when the customer has none.
    """
    email = customer_email.strip().lower()
    grant = (
        db.query(CustomerToken)
        .filter(
            CustomerToken.customer_email == email,
            or_(CustomerToken.expires_at.is_(None), CustomerToken.expires_at > now),
        )
        .order_by(CustomerToken.expires_at.is_(None), CustomerToken.expires_at, CustomerToken.created_at)
        .first()
    )
    if grant:
        db.query(CustomerToken).filter(CustomerToken.id == grant.id).update(
            {"tokens_remaining": CustomerToken.tokens_remaining + 1, "updated_at": now},
            synchronize_session="fetch",
        )
        return grant

    grant = CustomerToken(
        customer_email=email,
        tokens_remaining=1,
        notes="Refunded from cancelled booking",
    )
    db.add(grant)
    db.flush()
    return grant


def restore_membership_session(db: Session, membership_id: UUID, now: datetime) -> bool:
    membership = db.query(Membership).filter(Membership.id == membership_id).first()
    if not membership or membership.is_unlimited:
        return False
    updated = (
        db.query(Membership)
        .filter(
            Membership.id == membership_id,
            or_(
                Membership.sessions_remaining.is_(None),
                Membership.sessions_remaining < Membership.sessions_per_week,
            ),
        )
        .update(
            {"sessions_remaining": func.coalesce(Membership.sessions_remaining, 0) + 1, "updated_at": now},
            synchronize_session="fetch",
        )
    )
    return updated == 1


def restore_credits(db: Session, booking: Booking, now: datetime) -> int:
    """Give back every credit deduction recorded for ``booking``. Returns pence restored."""
    restored = 0
    for deduction in booking.credit_deductions:
        db.query(CustomerCredit).filter(CustomerCredit.id == deduction.credit_id).update(
            {"credit_balance": CustomerCredit.credit_balance + deduction.amount, "updated_at": now},
            synchronize_session="fetch",
        )
        restored += deduction.amount
    return restored


def record_code_redemption(db: Session, booking: Booking, strict: bool = True) -> None:
    """
    Count a promo code use against its cap and log the redemption.

    With ``strict`` an exhausted code raises InvalidInput; otherwise (payment
    already taken) the overrun is logged and accepted.
    """
    if not booking.discount_code_id and not booking.partner_code_id:
        return

    code_discount = max(0, (booking.discount_amount or 0) - (booking.credit_amount or 0))
    if booking.discount_code_id:
        updated = (
            db.query(DiscountCode)
            .filter(
                DiscountCode.id == booking.discount_code_id,
                or_(DiscountCode.max_uses.is_(None), DiscountCode.current_uses < DiscountCode.max_uses),
            )
            .update({"current_uses": DiscountCode.current_uses + 1}, synchronize_session="fetch")
        )
        if updated != 1:
            if strict:
                raise InvalidInput("This discount code has reached its usage limit")
            logger.warning(
                "Discount code %s over its usage limit on paid booking %s",
                booking.discount_code_id, booking.id,
            )
            db.query(DiscountCode).filter(DiscountCode.id == booking.discount_code_id).update(
                {"current_uses": DiscountCode.current_uses + 1}, synchronize_session="fetch"
            )

    db.add(DiscountRedemption(
        discount_code_id=booking.discount_code_id,
        partner_code_id=booking.partner_code_id,
        entity_type="booking",
        entity_id=booking.id,
        original_amount=booking.price_amount,
        discount_amount=code_discount,
        final_amount=booking.final_amount or 0,
    ))


def remaining_tokens(db: Session, customer_email: str, now: datetime) -> int:
    return sum(t.tokens_remaining for t in resolve_tokens(db, customer_email, now))


def remaining_credit(db: Session, user_id: UUID, now: datetime) -> int:
    return sum(c.credit_balance for c in resolve_credits(db, user_id, now))
