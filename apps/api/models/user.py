"""User model."""

import enum
import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base, utcnow


ROLE_USER = "USER"
ROLE_ADMIN = "ADMIN"


class RoleFlag(enum.Flag):
    """Independently toggleable capabilities; a user may hold several."""

    NONE = 0
    CLIENT = enum.auto()
    CONTENT_CREATOR = enum.auto()
    SERVICE_PROVIDER = enum.auto()


# Request payload name -> (column attribute, flag)
ROLE_FLAG_FIELDS = {
    "isClient": ("is_client", RoleFlag.CLIENT),
    "isContentCreator": ("is_content_creator", RoleFlag.CONTENT_CREATOR),
    "isServiceProvider": ("is_service_provider", RoleFlag.SERVICE_PROVIDER),
}


class User(Base):
    """Marketplace account holding the credit balance and role flags."""

    __tablename__ = "users"
    __table_args__ = (CheckConstraint("credits >= 0", name="ck_users_credits_non_negative"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, unique=True, nullable=True, index=True)
    image = Column(String, nullable=True)
    password_hash = Column(String, nullable=True)
    role = Column(String, nullable=False, default=ROLE_USER)
    is_client = Column(Boolean, nullable=False, default=True)
    is_content_creator = Column(Boolean, nullable=False, default=False)
    is_service_provider = Column(Boolean, nullable=False, default=False)
    credits = Column(Integer, nullable=False, default=0)

    email_verified = Column(Boolean, nullable=False, default=False)
    verification_token = Column(String, nullable=True, index=True)
    verification_expiry = Column(DateTime(timezone=True), nullable=True)
    reset_token = Column(String, nullable=True, index=True)
    reset_expiry = Column(DateTime(timezone=True), nullable=True)

    # Stored processor token for one-click purchases (Fernet-encrypted)
    payment_token_encrypted = Column(String, nullable=True)
    payment_token_provider = Column(String, nullable=True)
    payment_token_expires_at = Column(DateTime(timezone=True), nullable=True)

    is_pro = Column(Boolean, nullable=False, default=False)
    pro_until = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)

    # Relationships
    profile = relationship("Profile", back_populates="user", uselist=False, cascade="all, delete-orphan")
    listings = relationship("Listing", back_populates="user", cascade="all, delete-orphan")
    credit_transactions = relationship("CreditTransaction", back_populates="user", cascade="all, delete-orphan")
    payout_requests = relationship(
        "PayoutRequest",
        back_populates="provider",
        foreign_keys="PayoutRequest.provider_id",
    )

    @property
    def role_flags(self) -> RoleFlag:
        flags = RoleFlag.NONE
        for attribute, flag in ROLE_FLAG_FIELDS.values():
            if getattr(self, attribute):
                flags |= flag
        return flags

    def set_role_flag(self, flag: RoleFlag, value: bool) -> None:
        for attribute, candidate in ROLE_FLAG_FIELDS.values():
            if candidate == flag:
                setattr(self, attribute, bool(value))
                return
        raise ValueError(f"Unknown role flag: {flag}")
