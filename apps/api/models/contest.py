"""Contest and ContestEntry models for paid-entry raffles."""

import uuid

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base, utcnow


CONTEST_OPEN = "OPEN"
CONTEST_RESOLVED = "RESOLVED"


class Contest(Base):
    """Raffle with a fixed number of slots; OPEN -> RESOLVED once."""

    __tablename__ = "contests"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    title = Column(String, nullable=False)
    prize_description = Column(String, nullable=False)
    total_slots = Column(Integer, nullable=False)
    slot_price = Column(Float, nullable=False)
    entries_count = Column(Integer, nullable=False, default=0)
    status = Column(String, nullable=False, default=CONTEST_OPEN, index=True)
    creator_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    thread_id = Column(String, ForeignKey("forum_threads.id"), nullable=True)
    winner_id = Column(String, nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)

    creator = relationship("User")
    entries = relationship("ContestEntry", back_populates="contest", cascade="all, delete-orphan")


class ContestEntry(Base):
    __tablename__ = "contest_entries"
    __table_args__ = (UniqueConstraint("contest_id", "participant_id", name="uq_contest_entries_participant"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    contest_id = Column(String, ForeignKey("contests.id"), nullable=False, index=True)
    participant_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    is_winner = Column(Boolean, nullable=False, default=False)
    entry_fee_paid = Column(Float, nullable=False, default=0.0)
    checkout_session_id = Column(String, nullable=True)
    entered_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    contest = relationship("Contest", back_populates="entries")
    participant = relationship("User")
