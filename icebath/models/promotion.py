import uuid
from sqlalchemy import Column, String, Boolean, DateTime, func, Integer, Text, Uuid
from icebath.db.session import Base


class DiscountCode(Base):
    __tablename__ = "discount_codes"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    code = Column(String(50), unique=True, nullable=False, index=True)  # stored upper-cased
    description = Column(Text, nullable=True)
    discount_type = Column(String(20), nullable=False)  # percentage | fixed
    discount_value = Column(Integer, nullable=False)  # percent, or pence for fixed
    is_active = Column(Boolean, default=True)
    valid_from = Column(DateTime(timezone=True), nullable=True)
    valid_until = Column(DateTime(timezone=True), nullable=True)
    max_uses = Column(Integer, nullable=True)
    current_uses = Column(Integer, nullable=False, default=0)
    min_amount = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class PartnerCode(Base):
    __tablename__ = "partner_codes"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_name = Column(String(255), nullable=False)
    promo_code = Column(String(50), unique=True, nullable=False, index=True)
    discount_percentage = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class DiscountRedemption(Base):
    __tablename__ = "discount_redemptions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    discount_code_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    partner_code_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    entity_type = Column(String(20), nullable=False, default="booking")
    entity_id = Column(Uuid(as_uuid=True), nullable=False)
    original_amount = Column(Integer, nullable=False)
    discount_amount = Column(Integer, nullable=False)
    final_amount = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
