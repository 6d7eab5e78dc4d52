"""
Gift cards: buying one through Stripe Checkout, marking it paid from the
webhook, and redeeming a paid card into store credit.
"""

import logging
import random
import string
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from icebath.core.clock import Clock, as_utc
from icebath.core.config import settings
from icebath.core.exceptions import Conflict, InvalidInput, NotFound, UpstreamFailure
from icebath.core.security import CurrentUser
from icebath.models.customer import Customer
from icebath.models.entitlement import CustomerCredit
from icebath.models.gift_card import GiftCard
from icebath.schemas.entitlement import GiftCardPurchase
from icebath.services.entitlements import format_pence
from icebath.services.payment_gateway import StripeGateway

logger = logging.getLogger(__name__)


@dataclass
class GiftCardCheckout:
    gift_card: GiftCard
    redirect_url: str


@dataclass
class Redemption:
    credit: CustomerCredit
    message: str

    @property
    def credit_amount(self) -> int:
        return self.credit.credit_balance

    @property
    def expires_at(self) -> datetime:
        return self.credit.expires_at


# ---------------------------------------------------------------------------
# Purchase
# ---------------------------------------------------------------------------


def _generate_gift_code(db: Session) -> str:
    """Generate a unique 'GIFT-XXXXXXXX' code."""
    chars = string.ascii_uppercase + string.digits
    while True:
        code = "GIFT-" + "".join(random.choices(chars, k=8))
        if not db.query(GiftCard.id).filter(GiftCard.gift_code == code).first():
            return code


def purchase_gift_card(db: Session, request: GiftCardPurchase, clock: Clock,
                       gateway: StripeGateway) -> GiftCardCheckout:
    """
    Store a pending gift card and open Checkout for it. The code only becomes
    redeemable once the webhook marks the card paid.
    """
    low, high = settings.GIFT_CARD_MIN_AMOUNT, settings.GIFT_CARD_MAX_AMOUNT
    if not low <= request.amount <= high:
        raise InvalidInput(
            f"Gift card amount must be between {format_pence(low)} and {format_pence(high)}",
            details={"min": low, "max": high},
        )

    try:
        card = GiftCard(
            gift_code=_generate_gift_code(db),
            amount=request.amount,
            payment_status="pending",
            purchaser_name=request.purchaser_name,
            purchaser_email=request.purchaser_email,
            recipient_name=request.recipient_name,
            recipient_email=request.recipient_email,
            message=request.message,
        )
        db.add(card)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(card)

    for_whom = f"Gift card for {request.recipient_name}" if request.recipient_name else "Ice bath & sauna gift card"
    try:
        checkout = gateway.create_checkout_session(
            amount=request.amount,
            product_name=f"Ice Bath Studio Gift Card - {format_pence(request.amount)}",
            description=for_whom,
            customer_email=request.purchaser_email,
            metadata={"type": "gift_card", "gift_card_id": str(card.id)},
            success_url=f"{settings.SITE_URL}/gift-card-success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{settings.SITE_URL}/gift-cards",
        )
    except UpstreamFailure:
        logger.error("Checkout failed for gift card %s", card.id)
        card.payment_status = "cancelled"
        card.updated_at = clock.now()
        db.commit()
        raise

    card.stripe_session_id = checkout.id
    db.commit()
    db.refresh(card)
    logger.info("Gift card %s awaiting payment of %s (session %s)",
                card.id, format_pence(card.amount), checkout.id)
    return GiftCardCheckout(gift_card=card, redirect_url=checkout.url)


def mark_gift_card_paid(db: Session, stripe_session_id: str, clock: Clock) -> Optional[GiftCard]:
    """
    Flip the card behind a completed Checkout session to paid. Commits.
    Returns the card the first time only, so a retried webhook sends no
    second email.
    """
    try:
        updated = (
            db.query(GiftCard)
            .filter(GiftCard.stripe_session_id == stripe_session_id, GiftCard.payment_status != "paid")
            .update({"payment_status": "paid", "updated_at": clock.now()}, synchronize_session="fetch")
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    if updated != 1:
        logger.info("Gift card for session %s already paid or unknown", stripe_session_id)
        return None
    card = db.query(GiftCard).filter(GiftCard.stripe_session_id == stripe_session_id).first()
    logger.info("Gift card %s paid (%s)", card.gift_code, format_pence(card.amount))
    return card


# ---------------------------------------------------------------------------
# Redemption
# ---------------------------------------------------------------------------


def redeem_gift_card(db: Session, gift_code: str, user: CurrentUser, clock: Clock) -> Redemption:
    """Turn a paid gift card into store credit for ``user``."""
    code = (gift_code or "").strip().upper()
    if not code:
        raise InvalidInput("Gift card code is required")

    card = db.query(GiftCard).filter(GiftCard.gift_code == code).first()
    if not card:
        raise NotFound("Invalid gift card code. Please check and try again.")
    if card.payment_status != "paid":
        raise InvalidInput("This gift card has not been paid for yet.")
    if card.is_redeemed:
        raise Conflict("This gift card has already been redeemed.")

    now = clock.now()
    if card.expires_at and as_utc(card.expires_at) < now:
        raise InvalidInput("This gift card has expired.")

    try:
        claimed = (
            db.query(GiftCard)
            .filter(GiftCard.id == card.id, GiftCard.is_redeemed == False)  # noqa: E712
            .update(
                {"is_redeemed": True, "redeemed_at": now, "redeemed_by": user.id, "updated_at": now},
                synchronize_session="fetch",
            )
        )
        if claimed != 1:
            raise Conflict("This gift card has already been redeemed.")

        credit = CustomerCredit(
            user_id=user.id,
            customer_email=user.email,
            credit_balance=card.amount,
            gift_card_id=card.id,
            expires_at=now + timedelta(days=settings.GIFT_CREDIT_VALID_DAYS),
            redeemed_at=now,
        )
        db.add(credit)

        if not db.query(Customer.id).filter(Customer.email == user.email).first():
            db.add(Customer(email=user.email, full_name=user.full_name, phone=user.phone))

        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(credit)
    logger.info("Gift card %s redeemed by %s for %s", code, user.email, format_pence(card.amount))
    return Redemption(
        credit=credit,
        message=f"Gift card redeemed successfully! {format_pence(card.amount)} has been added to your credit balance.",
    )
