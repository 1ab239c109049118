"""Routers package."""

from . import (
    health,
    auth,
    admin,
    listings,
    content,
    purchase,
    profiles,
    checkout,
    user,
    webhooks,
    contests,
    forum,
    wishlist,
)
