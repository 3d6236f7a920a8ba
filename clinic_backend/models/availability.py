"""Weekly availability model definitions."""

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer
from clinic_backend.database import Base


class WeeklyAvailabilityRecord(Base):
    """One doctor's whole weekly template, stored as a single JSON document."""
    __tablename__ = "weekly_availability"

    doctor_id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    schedule = Column(JSON, nullable=False, default=dict)
    updated_at = Column(DateTime)
