"""Read-only WooCommerce REST client for live wishlist prices and stock."""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Optional

import httpx

from config import settings

logger = logging.getLogger(__name__)

_PRODUCT_PATTERNS = (
    re.compile(r"product[/\-_](\d+)", re.IGNORECASE),
    re.compile(r"/(\d+)/?$"),
)


def woocommerce_configured() -> bool:
    return bool(settings.WOOCOMMERCE_URL and settings.WOO_CONSUMER_KEY and settings.WOO_CONSUMER_SECRET)


def extract_product_id(url: Optional[str]) -> Optional[str]:
    """Pull a product id out of a product URL, or accept a bare numeric id."""
    if not url:
        return None
    for pattern in _PRODUCT_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    stripped = url.strip()
    return stripped if stripped.isdigit() else None


def _to_float(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


async def get_product_details(
    product_id: str,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Optional[Dict[str, Any]]:
    """Return normalized product details, or None on any failure."""
    if not woocommerce_configured():
        logger.warning("WooCommerce credentials not configured")
        return None

    url = f"{settings.WOOCOMMERCE_URL.rstrip('/')}/wp-json/wc/v3/products/{product_id}"
    try:
        async with httpx.AsyncClient(timeout=10.0, transport=transport) as client:
            response = await client.get(url, auth=(settings.WOO_CONSUMER_KEY, settings.WOO_CONSUMER_SECRET))
            response.raise_for_status()
            product = response.json()
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning("WooCommerce product %s lookup failed: %s", product_id, exc)
        return None

    if not isinstance(product, dict):
        logger.warning("WooCommerce product %s lookup returned %s, expected an object", product_id, type(product).__name__)
        return None

    sale_price = product.get("sale_price")
    stock_status = product.get("stock_status")
    return {
        "id": product.get("id"),
        "name": product.get("name"),
        "url": product.get("permalink"),
        "price": _to_float(sale_price or product.get("price")),
        "regularPrice": _to_float(product.get("regular_price") or product.get("price")),
        "salePrice": _to_float(sale_price) if sale_price else None,
        "stockStatus": stock_status,
        "stockQuantity": product.get("stock_quantity"),
        "purchasable": bool(product.get("purchasable")),
        "inStock": bool(product.get("in_stock", True)) and stock_status == "instock",
    }


def build_cart_url(product_id: str, quantity: int = 1) -> str:
    if not settings.WOOCOMMERCE_URL:
        return "#"
    return f"{settings.WOOCOMMERCE_URL.rstrip('/')}/?add-to-cart={product_id}&quantity={int(quantity)}"
