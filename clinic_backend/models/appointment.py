"""Appointment model definitions."""

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, text
from clinic_backend.database import Base


class Appointment(Base):
    """Represents a booked or historical appointment.

    Times are naive UTC. Rows are never deleted; cancelling sets ``status``.
    """
    __tablename__ = "appointments"
    __table_args__ = (
        Index(
            "uq_appointments_doctor_start_active",
            "doctor_id",
            "start_time",
            unique=True,
            sqlite_where=text("status != 'cancelled'"),
            postgresql_where=text("status != 'cancelled'"),
        ),
    )

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    status = Column(String, nullable=False, default="upcoming")
    reason = Column(String)
    updated_at = Column(DateTime)
