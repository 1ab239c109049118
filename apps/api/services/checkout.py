"""Checkout initiators for credit packs, Pro plans and turbo boosts.

Initiators only create the processor-side payment and return its redirect
URL. Local state changes when the payment webhook confirms the payment,
except for one-click purchases where the stored token charge is synchronous.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from database import ensure_utc, utcnow
from models.listing import Listing
from models.user import User
from services.boosts import boost_type_for_turbo_key
from services.crypto import decrypt_token
from services.errors import (
    CheckoutRequired,
    NotFound,
    Unauthenticated,
    Unauthorized,
    UpstreamFailure,
    ValidationError,
)
from services.ledger import add_credit_purchase
from services.payment_processor import NOT_CONFIGURED_MESSAGE, PaymentProcessor

logger = logging.getLogger(__name__)

CREDIT_PACKAGES: Dict[str, Dict[str, Any]] = {
    "credits_starter": {"name": "Starter", "credits": 250, "price_usd": 25.00, "discount_percent": 0},
    "credits_standard": {"name": "Standard", "credits": 550, "price_usd": 50.00, "discount_percent": 8.8},
    "credits_pro": {"name": "Pro Pack", "credits": 1200, "price_usd": 100.00, "discount_percent": 17},
    "credits_vip": {"name": "VIP Bulk", "credits": 3250, "price_usd": 250.00, "discount_percent": 23},
}

PRO_PLANS: Dict[str, Dict[str, Any]] = {
    "pro_1_month": {"name": "Pro 1 Month", "price_usd": 9.90, "duration_months": 1},
    "pro_3_months": {"name": "Pro 3 Months", "price_usd": 24.00, "duration_months": 3},
    "pro_6_months": {"name": "Pro 6 Months", "price_usd": 36.00, "duration_months": 6},
}

TURBO_BOOSTS: Dict[str, Dict[str, Any]] = {
    "turbo_1_day": {"name": "Turbo 1 Day", "price_usd": 5.00, "duration_days": 1},
    "turbo_3_days": {"name": "Turbo 3 Days", "price_usd": 12.00, "duration_days": 3},
    "turbo_7_days": {"name": "Turbo 7 Days", "price_usd": 25.00, "duration_days": 7},
    "superturbo_1_day": {"name": "SuperTurbo 1 Day", "price_usd": 10.00, "duration_days": 1},
    "superturbo_3_days": {"name": "SuperTurbo 3 Days", "price_usd": 24.00, "duration_days": 3},
    "superturbo_7_days": {"name": "SuperTurbo 7 Days", "price_usd": 50.00, "duration_days": 7},
}


def credit_package_catalog() -> list:
    return [
        {
            "id": key,
            "name": package["name"],
            "credits": package["credits"],
            "priceUSD": package["price_usd"],
            "costPerCredit": round(package["price_usd"] / package["credits"], 3),
            "discountPercent": package["discount_percent"],
        }
        for key, package in CREDIT_PACKAGES.items()
    ]


def _lookup(catalog: Dict[str, Dict[str, Any]], key: Optional[str], *, missing: str, invalid: str) -> Dict[str, Any]:
    if not key:
        raise ValidationError(missing)
    config = catalog.get(key)
    if not config:
        raise ValidationError(invalid)
    return config


def _require_processor(processor: PaymentProcessor) -> None:
    if not processor.api_key:
        raise UpstreamFailure(NOT_CONFIGURED_MESSAGE, status_code=503)


def _customer_email(user: Optional[User], supplied_email: Optional[str]) -> str:
    email = (supplied_email or (user.email if user else "") or "").strip()
    if not email:
        raise ValidationError("Email required for checkout")
    return email


async def load_user(user_id: Optional[str], db: AsyncSession) -> Optional[User]:
    if not user_id:
        return None
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


def has_usable_payment_token(user: Optional[User]) -> bool:
    if not user or not user.payment_token_encrypted:
        return False
    expires_at = ensure_utc(user.payment_token_expires_at)
    return expires_at is None or expires_at >= utcnow()


async def start_credit_checkout(
    db: AsyncSession,
    processor: PaymentProcessor,
    *,
    package_key: Optional[str],
    user_id: Optional[str],
    email: Optional[str] = None,
) -> Dict[str, Any]:
    _require_processor(processor)
    package = _lookup(CREDIT_PACKAGES, package_key, missing="Missing package", invalid="Invalid credit package")
    user = await load_user(user_id, db)
    customer_email = _customer_email(user, email)

    result = await processor.create_one_time_charge(
        amount=package["price_usd"],
        customer_email=customer_email,
        customer_id=user.id if user else None,
        description=f"{package['name']} Credit Package ({package['credits']} credits)",
        metadata={
            "package": package_key,
            "type": "credits_purchase",
            "credits": str(package["credits"]),
            "userId": user.id if user else "",
        },
    )
    if not result.success:
        raise UpstreamFailure(result.error or "Payment processing failed")

    logger.info("Credit checkout started package=%s user=%s payment=%s", package_key, user_id, result.payment_id)
    return {
        "url": result.checkout_url,
        "paymentId": result.payment_id,
        "requiresRedirect": True,
        "hasStoredPaymentMethod": has_usable_payment_token(user),
    }


async def start_pro_checkout(
    db: AsyncSession,
    processor: PaymentProcessor,
    *,
    plan_key: Optional[str],
    user_id: Optional[str],
    email: Optional[str] = None,
) -> Dict[str, Any]:
    plan = _lookup(PRO_PLANS, plan_key, missing="Missing plan", invalid="Invalid plan")
    user = await load_user(user_id, db)
    customer_email = _customer_email(user, email)

    result = await processor.create_subscription(
        plan_id=plan_key,
        customer_email=customer_email,
        customer_id=user.id if user else None,
        metadata={
            "plan": plan_key,
            "type": "pro_subscription",
            "duration_months": str(plan["duration_months"]),
            "userId": user.id if user else "",
        },
    )
    if not result.success:
        raise UpstreamFailure(result.error or "Payment processing failed")

    logger.info("Pro checkout started plan=%s user=%s subscription=%s", plan_key, user_id, result.subscription_id)
    return {
        "url": result.checkout_url,
        "subscriptionId": result.subscription_id,
        "requiresRedirect": True,
    }


async def start_turbo_checkout(
    db: AsyncSession,
    processor: PaymentProcessor,
    *,
    turbo_key: Optional[str],
    user_id: Optional[str],
    email: Optional[str] = None,
    listing_id: Optional[str] = None,
) -> Dict[str, Any]:
    _require_processor(processor)
    turbo = _lookup(TURBO_BOOSTS, turbo_key, missing="Missing type", invalid="Invalid turbo type")

    user = await load_user(user_id, db)
    if listing_id:
        if not user:
            raise Unauthenticated()
        listing_result = await db.execute(select(Listing).where(Listing.id == listing_id))
        listing = listing_result.scalar_one_or_none()
        if not listing or listing.user_id != user.id:
            raise Unauthorized("Listing not found or unauthorized")
    customer_email = _customer_email(user, email)

    result = await processor.create_one_time_charge(
        amount=turbo["price_usd"],
        customer_email=customer_email,
        customer_id=user.id if user else None,
        description=f"{turbo['name']} Boost",
        metadata={
            "type": "turbo_boost",
            "turbo": turbo_key,
            "boost_type": boost_type_for_turbo_key(turbo_key),
            "duration_days": str(turbo["duration_days"]),
            "listing_id": listing_id or "",
            "userId": user.id if user else "",
        },
    )
    if not result.success:
        raise UpstreamFailure(result.error or "Payment processing failed")

    logger.info("Turbo checkout started type=%s listing=%s payment=%s", turbo_key, listing_id, result.payment_id)
    return {"url": result.checkout_url, "paymentId": result.payment_id}


async def one_click_credit_purchase(
    user_id: str,
    db: AsyncSession,
    processor: PaymentProcessor,
    *,
    package_key: Optional[str],
) -> Dict[str, Any]:
    """Charge the stored payment token and grant the package credits."""
    package = _lookup(CREDIT_PACKAGES, package_key, missing="Credit package required", invalid="Invalid credit package")
    user = await load_user(user_id, db)
    if not user:
        raise NotFound("User not found")
    if not user.payment_token_encrypted:
        raise CheckoutRequired("No stored payment method")
    if not has_usable_payment_token(user):
        raise CheckoutRequired("Stored payment method expired")

    token = decrypt_token(user.payment_token_encrypted)
    result = await processor.charge_with_token(
        token=token,
        amount=package["price_usd"],
        description=f"Credit Package: {package_key} ({package['credits']} credits)",
        metadata={
            "package": package_key,
            "type": "credits_purchase",
            "credits": str(package["credits"]),
            "userId": user.id,
        },
    )
    if not result.success or not result.payment_id:
        logger.warning("One-click charge failed user=%s error=%s", user_id, result.error)
        raise ValidationError("Payment failed. Please try again or use a different payment method.")

    purchase = await add_credit_purchase(
        user.id,
        db,
        credits=package["credits"],
        payment_reference=result.payment_id,
        description=f"Purchased {package['credits']} credits via one-click",
    )
    return {
        "success": True,
        "credits": purchase["balance_after"],
        "creditsAdded": purchase["credits_added"],
        "message": "Credits purchased successfully!",
    }
