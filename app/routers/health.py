"""
Health Check Router
Liveness and dependency status endpoints
"""
from fastapi import APIRouter, Depends
from datetime import datetime
import logging

from app.core.config import settings
from app.core.wiring import Services
from app.routers.deps import get_services

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
async def health_check():
    """
    Health check endpoint.
    Returns API status.
    """
    return {
        "status": "healthy",
        "service": settings.PROJECT_NAME,
        "timestamp": datetime.utcnow().isoformat()
    }


@router.get("/status")
def services_status(services: Services = Depends(get_services)):
    """
    Check connectivity of the substrates the analytics pipeline depends on:
    - Redis (cache and progress leases)
    - SQS (analytics and report queues)
    - DynamoDB (users and expenses tables)
    """
    status = {
        "timestamp": datetime.utcnow().isoformat(),
        "services": {}
    }

    if services.clients is None:
        status["overall_status"] = "unknown"
        return status

    status["services"] = services.clients.health_check()

    all_connected = all(
        service.get("connected", False)
        for service in status["services"].values()
    )
    if not all_connected:
        logger.warning("One or more backing services are unreachable")

    status["overall_status"] = "healthy" if all_connected else "degraded"

    return status
