# backend/tutorhub/routes/v1/health.py
"""
Health check endpoint for monitoring and load balancer health checks.
"""

from datetime import datetime, timezone
import logging
from typing import Dict

from fastapi import APIRouter

from ... import __version__
from ...core.config import settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check() -> Dict[str, str]:
    return {
        "status": "healthy",
        "service": "tutorhub-api",
        "version": __version__,
        "environment": settings.environment,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
