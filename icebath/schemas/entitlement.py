from typing import Annotated, List, Optional
from pydantic import EmailStr, Field, UUID4, field_validator
from datetime import date, datetime

from icebath.schemas.common import CamelModel


class TokenGrant(CamelModel):
    id: UUID4
    tokens_remaining: int
    expires_at: Optional[datetime] = None
    notes: Optional[str] = None


class MembershipStatus(CamelModel):
    id: UUID4
    membership_type: str
    sessions_per_week: int
    sessions_remaining: int
    is_unlimited: bool
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    last_session_reset: Optional[date] = None


class CreditGrant(CamelModel):
    id: UUID4
    credit_balance: int
    expires_at: datetime


# GET /me/entitlements
class EntitlementSummary(CamelModel):
    email: str
    tokens: List[TokenGrant] = []
    total_tokens: int = 0
    membership: Optional[MembershipStatus] = None
    can_book_with_membership: bool = False
    credits: List[CreditGrant] = []
    total_credit: int = 0
    used_free_session_today: bool = False


# POST /gift-cards/redeem
class GiftCardRedeem(CamelModel):
    gift_code: str


class GiftCardRedeemResponse(CamelModel):
    success: bool
    message: str
    credit_amount: int
    expires_at: datetime


# POST /gift-cards
class GiftCardPurchase(CamelModel):
    purchaser_name: Annotated[str, Field(min_length=1, max_length=255)]
    purchaser_email: EmailStr
    recipient_name: Optional[str] = Field(default=None, max_length=255)
    recipient_email: Optional[EmailStr] = None
    amount: int  # pence
    message: Optional[str] = Field(default=None, max_length=500)

    @field_validator("recipient_name", "recipient_email", "message", mode="before")
    @classmethod
    def parse_empty_str_to_none(cls, v):
        if isinstance(v, str) and v.strip() == "":
            return None
        return v

    @field_validator("purchaser_email", "recipient_email", mode="after")
    @classmethod
    def normalize_email(cls, v):
        return v.strip().lower() if v else v


class GiftCardCheckoutResponse(CamelModel):
    gift_card_id: UUID4
    amount: int
    redirect_url: str
