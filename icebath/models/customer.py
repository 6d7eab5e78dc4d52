import uuid
from sqlalchemy import Column, String, Boolean, DateTime, func, Integer, JSON, Uuid
from icebath.db.session import Base


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class PricingConfig(Base):
    __tablename__ = "pricing_config"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    service_type = Column(String(20), nullable=False, index=True)  # combined (per person) | private (flat)
    price_amount = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    action = Column(String(100), nullable=False)
    table_name = Column(String(100), nullable=False)
    record_id = Column(Uuid(as_uuid=True), nullable=True)
    new_values = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
