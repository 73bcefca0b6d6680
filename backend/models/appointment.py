"""Appointment model definitions."""

from datetime import datetime

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship
from backend.database import Base


class Appointment(Base):
    """Represents a booked slot in the clinic calendar.

    The clinic runs a single calendar, so (date, time) is unique across every
    appointment regardless of status.
    """
    __tablename__ = "appointments"
    __table_args__ = (
        UniqueConstraint("date", "time", name="uq_appointments_date_time"),
    )

    id = Column(Integer, primary_key=True)
    pet_id = Column(Integer, ForeignKey("pets.id"), nullable=False)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    appointment_type = Column(String, nullable=False)
    date = Column(Date, nullable=False)
    time = Column(String(5), nullable=False)
    reason = Column(String, nullable=False)
    status = Column(String, nullable=False, default="pendiente")
    notes = Column(String, nullable=False, default="")
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    pet = relationship("Pet")
    owner = relationship("User")
