"""
Test-data builders. Each one adds, commits and returns the row.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from uuid import UUID, uuid4

from icebath.core.security import CurrentUser, create_access_token
from icebath.models.booking import Booking
from icebath.models.entitlement import CustomerCredit, CustomerToken, Membership
from icebath.models.gift_card import GiftCard
from icebath.models.promotion import DiscountCode, PartnerCode
from icebath.models.time_slot import TimeSlot
from icebath.schemas.booking import BookingCreate
from icebath.schemas.entitlement import GiftCardPurchase

# ---------------------------------------------------------------------------
# Stable values
# ---------------------------------------------------------------------------

CUSTOMER_ID: UUID = uuid4()
ADMIN_ID: UUID = uuid4()
OTHER_USER_ID: UUID = uuid4()

CUSTOMER_EMAIL = "sam@example.com"
ADMIN_EMAIL = "owner@example.com"

# Monday 1 June 2026, 10:00 in London
NOW = datetime(2026, 6, 1, 9, 0, 0, tzinfo=timezone.utc)
TODAY = date(2026, 6, 1)
SESSION_DAY = date(2026, 6, 3)  # Wednesday
SUNDAY = date(2026, 6, 7)

CHECKOUT_SESSION_ID = "cs_test_a1b2c3"
PAYMENT_INTENT_ID = "pi_test_123"

_reference_counter = 0


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


def make_customer(user_id: UUID = CUSTOMER_ID, email: str = CUSTOMER_EMAIL) -> CurrentUser:
    return CurrentUser(id=user_id, email=email, full_name="Sam Frost")


def make_admin() -> CurrentUser:
    return CurrentUser(id=ADMIN_ID, email=ADMIN_EMAIL, full_name="Studio Owner", role="admin")


def auth_headers(user: CurrentUser) -> dict:
    token = create_access_token(
        str(user.id), user.email, role=user.role, user_metadata={"full_name": user.full_name}
    )
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Rows
# ---------------------------------------------------------------------------


def make_slot(db, day: date = SESSION_DAY, at: time = time(9, 0), capacity: int = 5, booked_count: int = 0,
              service_type: str = "combined") -> TimeSlot:
    slot = TimeSlot(
        slot_date=day,
        slot_time=at,
        service_type=service_type,
        capacity=capacity,
        booked_count=booked_count,
        is_available=booked_count < capacity,
    )
    db.add(slot)
    db.commit()
    db.refresh(slot)
    return slot


def make_booking(db, slot: TimeSlot, *, guest_count: int = 1, booking_type: str = "communal",
                 payment_status: str = "paid", booking_status: str = "confirmed",
                 payment_method: str = "gateway", price_amount: Optional[int] = None,
                 final_amount: Optional[int] = None, discount_amount: int = 0,
                 customer_email: str = CUSTOMER_EMAIL, user_id: Optional[UUID] = CUSTOMER_ID,
                 stripe_session_id: Optional[str] = None, hold_seats: bool = True, **extra) -> Booking:
    """A booking on ``slot``; ``hold_seats`` also bumps the slot counter as a reservation would."""
    global _reference_counter
    _reference_counter += 1
    price = price_amount if price_amount is not None else 1800 * guest_count
    booking = Booking(
        booking_reference=f"IB-TEST{_reference_counter:04d}",
        user_id=user_id,
        customer_name="Sam Frost",
        customer_email=customer_email,
        time_slot_id=slot.id,
        session_date=slot.slot_date,
        session_time=slot.slot_time,
        service_type=slot.service_type,
        duration_minutes=60,
        booking_type=booking_type,
        guest_count=guest_count,
        price_amount=price,
        discount_amount=discount_amount,
        final_amount=price if final_amount is None and payment_method == "gateway" else final_amount,
        payment_method=payment_method,
        payment_status=payment_status,
        booking_status=booking_status,
        stripe_session_id=stripe_session_id,
        **extra,
    )
    db.add(booking)
    if hold_seats:
        held = slot.capacity if booking_type == "private" else guest_count
        slot.booked_count = (slot.booked_count or 0) + held
        slot.is_available = slot.booked_count < slot.capacity
    db.commit()
    db.refresh(booking)
    return booking


def make_token(db, email: str = CUSTOMER_EMAIL, remaining: int = 2,
               expires_at: Optional[datetime] = NOW + timedelta(days=30)) -> CustomerToken:
    token = CustomerToken(customer_email=email, tokens_remaining=remaining, expires_at=expires_at)
    db.add(token)
    db.commit()
    db.refresh(token)
    return token


def make_credit(db, balance: int, user_id: UUID = CUSTOMER_ID, email: str = CUSTOMER_EMAIL,
                expires_at: datetime = NOW + timedelta(days=200)) -> CustomerCredit:
    credit = CustomerCredit(user_id=user_id, customer_email=email, credit_balance=balance, expires_at=expires_at)
    db.add(credit)
    db.commit()
    db.refresh(credit)
    return credit


def make_membership(db, user_id: UUID = CUSTOMER_ID, sessions_per_week: int = 4,
                    sessions_remaining: Optional[int] = 4, membership_type: str = "4_per_week",
                    status: str = "active", end_date: date = TODAY + timedelta(days=30),
                    last_session_reset: Optional[date] = TODAY) -> Membership:
    membership = Membership(
        user_id=user_id,
        customer_email=CUSTOMER_EMAIL,
        membership_type=membership_type,
        sessions_per_week=sessions_per_week,
        sessions_remaining=sessions_remaining,
        status=status,
        start_date=TODAY - timedelta(days=30),
        end_date=end_date,
        last_session_reset=last_session_reset,
    )
    db.add(membership)
    db.commit()
    db.refresh(membership)
    return membership


def make_discount_code(db, code: str = "WINTER15", discount_type: str = "percentage", discount_value: int = 15,
                       **extra) -> DiscountCode:
    dc = DiscountCode(code=code, discount_type=discount_type, discount_value=discount_value,
                      is_active=extra.pop("is_active", True), current_uses=extra.pop("current_uses", 0), **extra)
    db.add(dc)
    db.commit()
    db.refresh(dc)
    return dc


def make_partner_code(db, promo_code: str = "GYMPAL", discount_percentage: int = 20) -> PartnerCode:
    pc = PartnerCode(company_name="Local Gym", promo_code=promo_code, discount_percentage=discount_percentage)
    db.add(pc)
    db.commit()
    db.refresh(pc)
    return pc


def make_gift_card(db, gift_code: str = "GIFT-ABCD1234", amount: int = 5000, payment_status: str = "paid",
                   is_redeemed: bool = False, expires_at: Optional[datetime] = None) -> GiftCard:
    card = GiftCard(
        gift_code=gift_code,
        amount=amount,
        payment_status=payment_status,
        is_redeemed=is_redeemed,
        expires_at=expires_at,
        purchaser_name="Alex",
        purchaser_email="alex@example.com",
    )
    db.add(card)
    db.commit()
    db.refresh(card)
    return card


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


def booking_request(slot: TimeSlot, **overrides) -> BookingCreate:
    data = {
        "customer_name": "Sam Frost",
        "customer_email": CUSTOMER_EMAIL,
        "time_slot_id": slot.id,
        "booking_type": "communal",
        "guest_count": 1,
        "payment_mode": "gateway",
    }
    data.update(overrides)
    return BookingCreate(**data)


def booking_payload(slot: TimeSlot, **overrides) -> dict:
    """camelCase JSON body for POST /bookings."""
    data = {
        "customerName": "Sam Frost",
        "customerEmail": CUSTOMER_EMAIL,
        "timeSlotId": str(slot.id),
        "bookingType": "communal",
        "guestCount": 1,
        "paymentMode": "gateway",
    }
    data.update(overrides)
    return data


def gift_card_request(**overrides) -> GiftCardPurchase:
    data = {
        "purchaser_name": "Alex",
        "purchaser_email": "alex@example.com",
        "recipient_name": "Jo",
        "recipient_email": "jo@example.com",
        "amount": 5000,
        "message": "Happy birthday!",
    }
    data.update(overrides)
    return GiftCardPurchase(**data)
