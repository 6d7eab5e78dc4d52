import uuid
from sqlalchemy import Column, String, DateTime, func, Integer, ForeignKey, Text, Date, Time, Uuid
from sqlalchemy.orm import relationship
from icebath.db.session import Base

class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    booking_reference = Column(String(20), unique=True, nullable=False, index=True)
    user_id = Column(Uuid(as_uuid=True), nullable=True, index=True)  # Supabase auth user, None for guests
    customer_name = Column(String(255), nullable=False)
    customer_email = Column(String(255), nullable=False, index=True)  # stored lower-cased
    customer_phone = Column(String(50), nullable=True)

    time_slot_id = Column(Uuid(as_uuid=True), ForeignKey("time_slots.id"), nullable=False, index=True)
    session_date = Column(Date, nullable=False, index=True)
    session_time = Column(Time, nullable=False)
    service_type = Column(String(20), nullable=False, default="combined")
    duration_minutes = Column(Integer, nullable=False, default=60)
    booking_type = Column(String(20), nullable=False, default="communal")  # communal | private
    guest_count = Column(Integer, nullable=False, default=1)

    # Money in pence
    price_amount = Column(Integer, nullable=False)
    discount_amount = Column(Integer, nullable=False, default=0)
    credit_amount = Column(Integer, nullable=False, default=0)  # store credit inside discount_amount
    final_amount = Column(Integer, nullable=True)
    discount_code_id = Column(Uuid(as_uuid=True), ForeignKey("discount_codes.id"), nullable=True)
    partner_code_id = Column(Uuid(as_uuid=True), ForeignKey("partner_codes.id"), nullable=True)

    payment_method = Column(String(20), nullable=False, default="gateway")  # gateway | token | membership | credit
    token_id = Column(Uuid(as_uuid=True), ForeignKey("customer_tokens.id"), nullable=True)
    membership_id = Column(Uuid(as_uuid=True), ForeignKey("memberships.id"), nullable=True)

    payment_status = Column(String(20), nullable=False, default="pending", index=True)  # pending, paid, cancelled, refunded, partial_refund
    booking_status = Column(String(20), nullable=False, default="pending", index=True)  # pending, confirmed, completed, cancelled, no_show
    special_requests = Column(Text, nullable=True)
    stripe_session_id = Column(String(255), nullable=True, unique=True, index=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    time_slot = relationship("TimeSlot", back_populates="bookings")
    credit_deductions = relationship("BookingCreditDeduction", back_populates="booking", cascade="all, delete-orphan")

class BookingCreditDeduction(Base):
    __tablename__ = "booking_credit_deductions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    booking_id = Column(Uuid(as_uuid=True), ForeignKey("bookings.id"), nullable=False, index=True)
    credit_id = Column(Uuid(as_uuid=True), ForeignKey("customer_credits.id"), nullable=False)
    amount = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    booking = relationship("Booking", back_populates="credit_deductions")
    credit = relationship("CustomerCredit")
