"""ListingBoost model: time-bounded paid visibility."""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base, ensure_utc, utcnow


class ListingBoost(Base):
    """Exactly one of listing_id, blog_post_id, user_id is set."""

    __tablename__ = "listing_boosts"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    type = Column(String, nullable=False)
    listing_id = Column(String, ForeignKey("listings.id"), nullable=True, index=True)
    blog_post_id = Column(String, ForeignKey("blog_posts.id"), nullable=True, index=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=True, index=True)
    purchased_by = Column(String, ForeignKey("users.id"), nullable=True, index=True)
    price_credits = Column(Integer, nullable=False, default=0)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    category = Column(String, nullable=True)
    # Processor payment id for boosts bought with cash (turbo checkout)
    external_reference = Column(String, nullable=True, unique=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    listing = relationship("Listing", back_populates="boosts")

    def is_live(self, now: Optional[datetime] = None) -> bool:
        """Stored flag and the date window must both agree."""
        current = now or utcnow()
        return bool(self.is_active) and ensure_utc(self.start_date) <= current < ensure_utc(self.end_date)
