"""
Application configuration using Pydantic Settings.
"""

from decimal import Decimal
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./marketplace.db"

    # Redis
    REDIS_URL: str = "redis://localhost:6379"

    # API
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    PUBLIC_BASE_URL: str = "http://localhost:3000"
    SITE_NAME: str = "Acompanhantes.life"

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    # Admin allow-list (comma-separated emails)
    ADMIN_EMAILS: str = ""

    # Credits economy
    CREDIT_TO_CASH_RATE: Decimal = Decimal("0.10")
    PLATFORM_FEE_RATE: Decimal = Decimal("0.20")
    BOOST_EXPIRY_SWEEP_MINUTES: int = 15

    # Payment processor (credits, pro plans, turbo boosts)
    PAYMENT_PROCESSOR: str = "placeholder"
    PAYMENT_PROCESSOR_API_KEY: str = ""
    PAYMENT_PROCESSOR_API_SECRET: str = ""
    PAYMENT_PROCESSOR_BASE_URL: str = ""
    PAYMENT_PROCESSOR_TIMEOUT_SECONDS: float = 15.0

    # Stripe (contest entries)
    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""

    # Mailgun
    MAILGUN_API_KEY: str = ""
    MAILGUN_DOMAIN: str = ""
    MAILGUN_FROM_EMAIL: str = ""
    MAILGUN_BASE_URL: str = "https://api.mailgun.net"

    # WooCommerce (wishlist enrichment)
    WOOCOMMERCE_URL: str = ""
    WOO_CONSUMER_KEY: str = ""
    WOO_CONSUMER_SECRET: str = ""

    # Security
    JWT_SECRET: str = "change_me_in_production"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRATION_HOURS: int = 24 * 7
    ENCRYPTION_KEY: str = "change_me_32_byte_key_for_prod"
    AUTO_CREATE_DB_SCHEMA: bool = True

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)


settings = Settings()


def parse_admin_emails(raw: str) -> List[str]:
    """Split a comma-separated allow-list into normalized emails."""
    return [
        email.strip().lower()
        for email in (raw or "").split(",")
        if email.strip()
    ]


def validate_security_settings() -> None:
    """Fail fast when insecure default secrets are still configured."""
    insecure_values = {
        "",
        "change_me_in_production",
        "change_me_32_byte_key_for_prod",
        "fallback-secret",
    }
    jwt_secret = (settings.JWT_SECRET or "").strip()
    encryption_key = (settings.ENCRYPTION_KEY or "").strip()

    if jwt_secret in insecure_values or len(jwt_secret) < 24:
        raise ValueError("JWT_SECRET is insecure. Configure a strong non-default secret (>=24 chars).")
    if encryption_key in insecure_values or len(encryption_key) < 32:
        raise ValueError("ENCRYPTION_KEY is insecure. Configure a strong non-default key (>=32 chars).")
