import uuid
from sqlalchemy import Column, String, Boolean, DateTime, func, Integer, Text, Uuid
from icebath.db.session import Base


class GiftCard(Base):
    __tablename__ = "gift_cards"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    gift_code = Column(String(32), unique=True, nullable=False, index=True)
    amount = Column(Integer, nullable=False)  # pence
    payment_status = Column(String(20), nullable=False, default="pending")
    is_redeemed = Column(Boolean, nullable=False, default=False)
    redeemed_at = Column(DateTime(timezone=True), nullable=True)
    redeemed_by = Column(Uuid(as_uuid=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    purchaser_name = Column(String(255), nullable=False)
    purchaser_email = Column(String(255), nullable=False)
    recipient_name = Column(String(255), nullable=True)
    recipient_email = Column(String(255), nullable=True)
    message = Column(Text, nullable=True)
    stripe_session_id = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
