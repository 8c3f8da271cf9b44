"""
Health check endpoints.

- GET  /health                - basic liveness (always 200 if app running)
- GET  /health/config         - presence/format configuration check, no network
- POST /health/config/refresh - full re-validation including the SendGrid probe
"""
import logging
from datetime import datetime, timezone
from fastapi import APIRouter, Depends

from paynotify.services.container import Services, get_services

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])

VERSION = "1.0.0"


@router.get("/health")
async def health_check():
    """Basic liveness check - returns 200 if the app is running."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": VERSION,
    }


@router.get("/health/config")
async def config_check(services: Services = Depends(get_services)):
    result = services.validator.validate_sync()
    return {
        **result.to_dict(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.post("/health/config/refresh")
async def config_refresh(services: Services = Depends(get_services)):
    services.validator.clear_cache()
    result = await services.validator.validate(force_refresh=True)
    services.validator.log_results(result)
    return {
        **result.to_dict(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
