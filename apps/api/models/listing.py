"""Listing model for paid classified ads."""

import uuid

from sqlalchemy import Column, DateTime, Float, ForeignKey, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base, utcnow


LISTING_PENDING = "PENDING"
LISTING_ACTIVE = "ACTIVE"
LISTING_INACTIVE = "INACTIVE"


class Listing(Base):
    """Classified ad; visible only after admin approval."""

    __tablename__ = "listings"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    city = Column(String, nullable=False, index=True)
    description = Column(Text, nullable=False)
    price = Column(Float, nullable=True)
    status = Column(String, nullable=False, default=LISTING_PENDING, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)

    user = relationship("User", back_populates="listings")
    boosts = relationship("ListingBoost", back_populates="listing")
