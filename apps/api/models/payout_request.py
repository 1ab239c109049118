"""PayoutRequest model."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base, utcnow


PAYOUT_REQUESTED = "REQUESTED"
PAYOUT_COMPLETED = "COMPLETED"
PAYOUT_REJECTED = "REJECTED"


class PayoutRequest(Base):
    """Provider cash-out request; only REQUESTED rows may transition."""

    __tablename__ = "payout_requests"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    provider_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    attached_amount = Column(Numeric(12, 2), nullable=False, default=0)
    payout_method = Column(String, nullable=True)
    payout_details = Column(Text, nullable=False, default="")
    status = Column(String, nullable=False, default=PAYOUT_REQUESTED, index=True)
    requested_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), index=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    processed_by = Column(String, ForeignKey("users.id"), nullable=True)
    rejection_reason = Column(Text, nullable=True)

    provider = relationship("User", foreign_keys=[provider_id], back_populates="payout_requests")
    transactions = relationship("Transaction", back_populates="payout_request")
