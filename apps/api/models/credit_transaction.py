"""CreditTransaction model: append-only audit of credit balance changes."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base, utcnow


CREDIT_PURCHASE = "PURCHASE"
CREDIT_SPEND = "SPEND"
CREDIT_BOOST = "BOOST"
CREDIT_ADJUSTMENT = "ADJUSTMENT"


class CreditTransaction(Base):
    """Immutable credit ledger entry."""

    __tablename__ = "credit_transactions"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String, nullable=False)
    amount = Column(Integer, nullable=False)
    balance_after = Column(Integer, nullable=True)
    description = Column(String, nullable=True)
    # Processor payment id; unique so a redelivered payment cannot credit twice.
    external_reference = Column(String, nullable=True, unique=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), index=True)

    user = relationship("User", back_populates="credit_transactions")
