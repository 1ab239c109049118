"""WishlistItem model."""

import uuid

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, String
from sqlalchemy.sql import func

from database import Base, utcnow


class WishlistItem(Base):
    """Gift wish of a creator; may point at a WooCommerce product."""

    __tablename__ = "wishlist_items"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    product_name = Column(String, nullable=False)
    product_url = Column(String, nullable=False)
    price = Column(Float, nullable=True)
    is_fulfilled = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)
