"""
Booking model - the engagement between a client and a provider
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from backend.database import Base


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    provider_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String, nullable=True)

    # Lifecycle is owned by the booking workflow; progress never changes it
    status = Column(String, nullable=False, default="confirmed")

    # Derived - written only by the recalculation trigger
    progress_percentage = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    client = relationship("User", foreign_keys=[client_id])
    provider = relationship("User", foreign_keys=[provider_id])
    milestones = relationship(
        "Milestone",
        back_populates="booking",
        order_by="Milestone.order_index",
        passive_deletes=True,
    )
