"""Payment processor abstraction used by the checkout flows and the payment webhook."""

from __future__ import annotations

import hashlib
import hmac
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx

from config import settings

logger = logging.getLogger(__name__)

NOT_CONFIGURED_MESSAGE = "Payment processor not configured. Please contact support."


@dataclass(frozen=True)
class PaymentResult:
    success: bool
    payment_id: Optional[str] = None
    subscription_id: Optional[str] = None
    checkout_url: Optional[str] = None
    error: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


def compute_webhook_signature(payload: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


class PaymentProcessor:
    """Thin JSON-over-HTTP client for the configured high-risk processor."""

    def __init__(
        self,
        *,
        name: Optional[str] = None,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.name = name if name is not None else settings.PAYMENT_PROCESSOR
        self.api_key = api_key if api_key is not None else settings.PAYMENT_PROCESSOR_API_KEY
        self.api_secret = api_secret if api_secret is not None else settings.PAYMENT_PROCESSOR_API_SECRET
        self.base_url = (base_url if base_url is not None else settings.PAYMENT_PROCESSOR_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.PAYMENT_PROCESSOR_TIMEOUT_SECONDS
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.base_url)

    def _return_url(self, outcome: str, kind: str) -> str:
        return f"{settings.PUBLIC_BASE_URL.rstrip('/')}/precos?{outcome}={kind}"

    async def _post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
            headers={"Authorization": f"Bearer {self.api_key}"},
        ) as client:
            response = await client.post(path, json=body)
            response.raise_for_status()
            return response.json()

    async def _call(self, path: str, body: Dict[str, Any], *, action: str) -> PaymentResult:
        if not self.configured:
            return PaymentResult(success=False, error=NOT_CONFIGURED_MESSAGE)
        try:
            data = await self._post(path, body)
        except httpx.HTTPStatusError as exc:
            logger.warning("Processor %s failed with status %s", action, exc.response.status_code)
            return PaymentResult(success=False, error=f"Payment processor rejected the {action}")
        except httpx.HTTPError as exc:
            logger.warning("Processor %s unreachable: %s", action, exc)
            return PaymentResult(success=False, error="Payment processor unavailable")

        return PaymentResult(
            success=True,
            payment_id=data.get("payment_id") or data.get("id"),
            subscription_id=data.get("subscription_id"),
            checkout_url=data.get("checkout_url") or data.get("url"),
            raw=data,
        )

    async def create_one_time_charge(
        self,
        *,
        amount: float,
        customer_email: str,
        description: str,
        currency: str = "USD",
        customer_id: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> PaymentResult:
        return await self._call(
            "/api/charges",
            {
                "amount": amount,
                "currency": currency,
                "customer_email": customer_email,
                "customer_id": customer_id,
                "description": description,
                "return_url": self._return_url("success", "payment"),
                "cancel_url": self._return_url("canceled", "payment"),
                "metadata": metadata or {},
            },
            action="charge",
        )

    async def create_subscription(
        self,
        *,
        plan_id: str,
        customer_email: str,
        customer_id: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> PaymentResult:
        return await self._call(
            "/api/subscriptions",
            {
                "plan_id": plan_id,
                "customer_email": customer_email,
                "customer_id": customer_id,
                "return_url": self._return_url("success", "pro"),
                "cancel_url": self._return_url("canceled", "pro"),
                "metadata": metadata or {},
            },
            action="subscription",
        )

    async def charge_with_token(
        self,
        *,
        token: str,
        amount: float,
        description: str,
        currency: str = "USD",
        metadata: Optional[Dict[str, str]] = None,
    ) -> PaymentResult:
        return await self._call(
            "/api/charges",
            {
                "customer_token": token,
                "amount": amount,
                "currency": currency,
                "description": description,
                "metadata": metadata or {},
            },
            action="token charge",
        )

    def verify_webhook(self, payload: bytes, signature: Optional[str]) -> bool:
        """Constant-time check of the hex HMAC-SHA256 of the raw body."""
        if not self.api_secret:
            logger.warning("Payment processor secret not configured; rejecting webhook")
            return False
        if not signature:
            return False
        expected = compute_webhook_signature(payload, self.api_secret)
        return hmac.compare_digest(expected, signature.strip().lower())


def get_payment_processor() -> PaymentProcessor:
    return PaymentProcessor()
