from __future__ import annotations

from enum import Enum
from typing import Annotated, Optional
from pydantic import EmailStr, Field, UUID4, field_validator, model_validator
from datetime import date, datetime, time

from icebath.schemas.common import CamelModel


class BookingType(str, Enum):
    COMMUNAL = "communal"
    PRIVATE = "private"


class PaymentMode(str, Enum):
    GATEWAY = "gateway"
    TOKEN = "token"
    MEMBERSHIP = "membership"
    CREDIT = "credit"


class RefundType(str, Enum):
    FULL = "full"
    PARTIAL = "partial"


# Booking: Create (POST /bookings)
class BookingCreate(CamelModel):
    customer_name: Annotated[str, Field(min_length=1, max_length=255)]
    customer_email: EmailStr
    customer_phone: Optional[str] = None
    time_slot_id: UUID4
    booking_type: BookingType = BookingType.COMMUNAL
    guest_count: Annotated[int, Field(ge=1, le=5)] = 1
    special_requests: Optional[str] = Field(default=None, max_length=1000)
    payment_mode: PaymentMode = PaymentMode.GATEWAY
    apply_credit: bool = False
    discount_code: Optional[str] = None
    # Membership only: guests paid for by card alongside the member's free session
    paying_guest_count: Annotated[int, Field(ge=0, le=4)] = 0

    @field_validator("customer_name", mode="after")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("customer name is required")
        return v

    @field_validator("customer_email", mode="after")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("discount_code", "customer_phone", mode="before")
    @classmethod
    def parse_empty_str_to_none(cls, v):
        if isinstance(v, str) and v.strip() == "":
            return None
        return v

    @model_validator(mode="after")
    def private_is_whole_slot(self) -> BookingCreate:
        # A private booking takes the whole slot; guest_count is informational
        if self.booking_type == BookingType.PRIVATE and self.guest_count > 5:
            raise ValueError("private sessions hold at most 5 guests")
        return self

    @model_validator(mode="after")
    def paying_guests_need_membership(self) -> BookingCreate:
        if self.paying_guest_count and self.payment_mode != PaymentMode.MEMBERSHIP:
            raise ValueError("paying guests can only be added to a membership booking")
        return self


# Booking: Create response
class BookingCreated(CamelModel):
    booking_id: UUID4
    booking_reference: str
    payment_status: str
    booking_status: str
    price_amount: int
    discount_amount: int
    final_amount: Optional[int] = None
    credits_used: int = 0
    redirect_url: Optional[str] = None
    tokens_remaining: Optional[int] = None
    sessions_remaining: Optional[int] = None
    email_sent: Optional[bool] = None


# Booking: Full response (GET /bookings/{id}, admin list)
class Booking(CamelModel):
    id: UUID4
    booking_reference: str
    user_id: Optional[UUID4] = None
    customer_name: str
    customer_email: str
    customer_phone: Optional[str] = None
    time_slot_id: UUID4
    session_date: date
    session_time: time
    service_type: str
    duration_minutes: int
    booking_type: str
    guest_count: int
    price_amount: int
    discount_amount: int
    final_amount: Optional[int] = None
    payment_method: str
    payment_status: str
    booking_status: str
    special_requests: Optional[str] = None
    stripe_session_id: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


# Booking: Cancel (POST /bookings/{id}/cancel)
class BookingCancelRequest(CamelModel):
    refund_type: Optional[RefundType] = None


class BookingCancelResponse(CamelModel):
    success: bool
    message: str
    token_refunded: bool = False
    slots_freed: int = 0
    refund_status: Optional[str] = None
    refund_error: Optional[str] = None


# Booking: Verify payment (POST /bookings/{id}/verify-payment)
class PaymentVerificationResponse(CamelModel):
    success: bool
    status: str  # already_paid | payment_confirmed | slot_unavailable | refunded | unpaid | no_stripe_session | stripe_error | other
    message: str
    stripe_status: Optional[str] = None
