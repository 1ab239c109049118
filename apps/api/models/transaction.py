"""Transaction model: one value-moving event owed to a provider."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base, utcnow


TRANSACTION_VOD_UNLOCK = "VOD_UNLOCK"
TRANSACTION_CONTEST_ENTRY = "CONTEST_ENTRY"


class Transaction(Base):
    """Created once; only ``payout_request_id`` changes afterwards."""

    __tablename__ = "transactions"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    type = Column(String, nullable=False, index=True)
    amount_credits = Column(Integer, nullable=False)
    amount_cash = Column(Numeric(12, 2), nullable=False)
    platform_fee = Column(Numeric(12, 2), nullable=False)
    provider_amount = Column(Numeric(12, 2), nullable=False)
    provider_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    client_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    listing_id = Column(String, ForeignKey("listings.id"), nullable=True)
    content_item_id = Column(String, ForeignKey("content_items.id"), nullable=True)
    payout_request_id = Column(String, ForeignKey("payout_requests.id"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), index=True)

    provider = relationship("User", foreign_keys=[provider_id])
    client = relationship("User", foreign_keys=[client_id])
    payout_request = relationship("PayoutRequest", back_populates="transactions")
