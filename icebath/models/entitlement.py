import uuid
from sqlalchemy import Column, String, DateTime, func, Integer, ForeignKey, Text, Date, Uuid
from icebath.db.session import Base

UNLIMITED_SESSIONS = 999


class CustomerToken(Base):
    __tablename__ = "customer_tokens"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    customer_email = Column(String(255), nullable=False, index=True)
    tokens_remaining = Column(Integer, nullable=False, default=0)
    expires_at = Column(DateTime(timezone=True), nullable=True)  # NULL never expires
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class Membership(Base):
    __tablename__ = "memberships"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    customer_email = Column(String(255), nullable=True, index=True)
    customer_name = Column(String(255), nullable=True)
    membership_type = Column(String(50), nullable=False)  # e.g. "4_per_week", "unlimited"
    sessions_per_week = Column(Integer, nullable=False)
    sessions_remaining = Column(Integer, nullable=True)
    status = Column(String(20), nullable=False, default="active", index=True)  # active, cancelled, expired
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    last_session_reset = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def is_unlimited(self) -> bool:
        return self.membership_type == "unlimited" or self.sessions_per_week == UNLIMITED_SESSIONS


class CustomerCredit(Base):
    __tablename__ = "customer_credits"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    customer_email = Column(String(255), nullable=False)
    credit_balance = Column(Integer, nullable=False, default=0)  # pence
    gift_card_id = Column(Uuid(as_uuid=True), ForeignKey("gift_cards.id"), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    redeemed_at = Column(DateTime(timezone=True), server_default=func.now())
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
