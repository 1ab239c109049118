"""Error taxonomy shared by services and routers.

Every error is an ``HTTPException`` so services can raise it directly and the
global handler in ``main`` renders it as ``{"error": detail, **extra}``.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException


class MarketplaceError(HTTPException):
    status_code = 500
    default_detail = "Internal server error"

    def __init__(self, detail=None, *, status_code=None, headers=None, extra: Optional[Dict[str, Any]] = None):
        super().__init__(
            status_code=status_code or self.status_code,
            detail=detail or self.default_detail,
            headers=headers,
        )
        self.extra = extra or {}


class ValidationError(MarketplaceError):
    status_code = 400
    default_detail = "Invalid request"


class Unauthenticated(MarketplaceError):
    status_code = 401
    default_detail = "Authentication required"


class Unauthorized(MarketplaceError):
    status_code = 403
    default_detail = "Forbidden"


class NotFound(MarketplaceError):
    status_code = 404
    default_detail = "Not found"


class InvalidState(MarketplaceError):
    status_code = 400
    default_detail = "Operation not allowed in current state"


class InsufficientCredits(MarketplaceError):
    status_code = 400
    default_detail = "Insufficient credits"


class CheckoutRequired(ValidationError):
    """No usable stored payment method; the client must go through checkout."""

    def __init__(self, detail=None):
        super().__init__(detail, extra={"requiresCheckout": True})


class UpstreamFailure(MarketplaceError):
    status_code = 502
    default_detail = "Upstream service failed"


class InternalError(MarketplaceError):
    status_code = 500
