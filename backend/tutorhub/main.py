# backend/tutorhub/main.py
from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI

from . import __version__
from .core.config import settings
from .errors import register_error_handlers
from .routes.v1 import (
    availability as availability_v1,
    bookings as bookings_v1,
    health as health_v1,
    payouts as payouts_v1,
    prometheus as prometheus_v1,
    slots as slots_v1,
    wallet as wallet_v1,
    webhooks_payouts as webhooks_payouts_v1,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup/shutdown without deprecated events."""
    logger.info("TutorHub API starting up...")
    logger.info(
        f"Environment: {settings.environment}, lock backend: {settings.teacher_lock_backend}"
    )
    yield
    logger.info("TutorHub API shutting down...")


app = FastAPI(
    title="TutorHub API",
    description="Scheduling, bookings, teacher wallet and payouts",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=app_lifespan,
)

# Register unified error envelope handlers
register_error_handlers(app)

api_v1 = APIRouter(prefix="/api/v1")

api_v1.include_router(availability_v1.router, prefix="/teachers")
api_v1.include_router(slots_v1.router, prefix="/teachers")
api_v1.include_router(bookings_v1.router, prefix="/bookings")
api_v1.include_router(wallet_v1.router, prefix="/wallet")
api_v1.include_router(payouts_v1.router, prefix="/payouts")
api_v1.include_router(webhooks_payouts_v1.router, prefix="/webhooks")

app.include_router(api_v1)
app.include_router(health_v1.router)
app.include_router(prometheus_v1.router)
