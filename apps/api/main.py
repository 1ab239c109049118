"""
Marketplace API - FastAPI Backend
Main application entry point with exception mapping and API routing.
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import settings, validate_security_settings
from database import Base, async_session_maker, engine
import models  # noqa: F401
from routers import (
    health,
    auth,
    admin,
    listings,
    content,
    profiles,
    purchase,
    checkout,
    user,
    webhooks,
    contests,
    forum,
    wishlist,
)
from services.boosts import expire_boosts

logger = logging.getLogger(__name__)


async def _periodic_boost_expiry() -> None:
    interval_minutes = max(int(settings.BOOST_EXPIRY_SWEEP_MINUTES), 0)
    if interval_minutes <= 0:
        return
    while True:
        await asyncio.sleep(interval_minutes * 60)
        try:
            async with async_session_maker() as session:
                expired = await expire_boosts(session)
            if expired:
                print(f"⏳ Boost expiry sweep: expired={expired}")
        except SQLAlchemyError as exc:
            print(f"⚠️ Boost expiry sweep tick failed: {exc}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    # Startup
    print("🚀 Starting Marketplace API...")
    validate_security_settings()
    if settings.AUTO_CREATE_DB_SCHEMA:
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            print("🗄️ Database schema verified.")
        except SQLAlchemyError as e:
            print(f"⚠️ Database bootstrap skipped: {e}")
    boost_expiry_task = None
    if int(settings.BOOST_EXPIRY_SWEEP_MINUTES) > 0:
        boost_expiry_task = asyncio.create_task(_periodic_boost_expiry())
        print(f"📅 Boost expiry sweep enabled (every {int(settings.BOOST_EXPIRY_SWEEP_MINUTES)} min).")
    yield
    # Shutdown
    if boost_expiry_task is not None:
        boost_expiry_task.cancel()
        try:
            await boost_expiry_task
        except asyncio.CancelledError:
            pass
    print("👋 Shutting down API...")


app = FastAPI(
    title="Marketplace API",
    description="Listings, credits, boosts, contests, forum and wishlists",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    body = {"error": exc.detail}
    body.update(getattr(exc, "extra", None) or {})
    return JSONResponse(status_code=exc.status_code, content=body, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=400,
        content={"error": f"{location}: {message}" if location else message},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(auth.router, prefix="/auth", tags=["Authentication"])
app.include_router(admin.router, prefix="/admin", tags=["Admin"])
app.include_router(listings.router, prefix="/listings", tags=["Listings"])
app.include_router(content.router, tags=["Content"])
app.include_router(purchase.router, prefix="/purchase", tags=["Purchase"])
app.include_router(checkout.router, prefix="/checkout", tags=["Checkout"])
app.include_router(user.router, tags=["Wallet"])
app.include_router(profiles.router, tags=["Profiles"])
app.include_router(webhooks.router, prefix="/webhooks", tags=["Webhooks"])
app.include_router(contests.router, prefix="/contests", tags=["Contests"])
app.include_router(forum.router, prefix="/forum", tags=["Forum"])
app.include_router(wishlist.router, prefix="/wishlist", tags=["Wishlist"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Marketplace API",
        "version": "0.1.0",
        "status": "running"
    }
