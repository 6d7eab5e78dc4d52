import uuid
from sqlalchemy import Column, String, Boolean, Date, Time, Integer, DateTime, UniqueConstraint, func, Uuid
from sqlalchemy.orm import relationship
from icebath.db.session import Base

class TimeSlot(Base):
    __tablename__ = "time_slots"
    __table_args__ = (
        UniqueConstraint("slot_date", "slot_time", "service_type", name="uq_time_slots_date_time_service"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    slot_date = Column(Date, nullable=False, index=True)
    slot_time = Column(Time, nullable=False)
    service_type = Column(String(20), nullable=False, default="combined")
    capacity = Column(Integer, nullable=False, default=5)
    booked_count = Column(Integer, nullable=False, default=0)  # CAS-guarded seat counter
    is_available = Column(Boolean, nullable=False, default=True)  # always booked_count < capacity
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    bookings = relationship("Booking", back_populates="time_slot")
