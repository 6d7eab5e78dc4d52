from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from icebath.api.deps import get_clock, get_current_user, get_db, get_payment_gateway
from icebath.core.clock import Clock
from icebath.core.security import CurrentUser
from icebath.schemas.entitlement import (
    GiftCardCheckoutResponse,
    GiftCardPurchase,
    GiftCardRedeem,
    GiftCardRedeemResponse,
)
from icebath.services.gift_cards import purchase_gift_card, redeem_gift_card
from icebath.services.payment_gateway import StripeGateway

router = APIRouter(prefix="/gift-cards", tags=["Gift Cards"])


# ---------------------------------------------------------------------------
# POST /gift-cards: buy a gift card
# ---------------------------------------------------------------------------


@router.post("", response_model=GiftCardCheckoutResponse, status_code=status.HTTP_201_CREATED)
def purchase(
    payload: GiftCardPurchase,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    gateway: StripeGateway = Depends(get_payment_gateway),
):
    """Start paying for a gift card. The code is emailed once Stripe confirms payment."""
    checkout = purchase_gift_card(db, payload, clock, gateway)
    return GiftCardCheckoutResponse(
        gift_card_id=checkout.gift_card.id,
        amount=checkout.gift_card.amount,
        redirect_url=checkout.redirect_url,
    )


# ---------------------------------------------------------------------------
# POST /gift-cards/redeem
# ---------------------------------------------------------------------------


@router.post("/redeem", response_model=GiftCardRedeemResponse)
def redeem(
    payload: GiftCardRedeem,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
    clock: Clock = Depends(get_clock),
):
    """Add a paid gift card's value to the signed-in customer's credit balance."""
    redemption = redeem_gift_card(db, payload.gift_code, user, clock)
    return GiftCardRedeemResponse(
        success=True,
        message=redemption.message,
        credit_amount=redemption.credit_amount,
        expires_at=redemption.expires_at,
    )
