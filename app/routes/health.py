"""
Health check routes for the custom SSO service
"""

from datetime import datetime, timezone
from fastapi import APIRouter, Request
import structlog

from app.config import get_settings
from app.utils.dependencies import OutboxDep

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(request: Request, outbox: OutboxDep):
    """Health check with component status"""
    settings = get_settings()
    health_data = {
        "service": settings.service_name,
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": settings.service_version,
        "components": {}
    }

    identity = getattr(request.app.state, "identity", None)
    if identity is None:
        health_data["components"]["identity_platform"] = {"status": "not_initialized"}
    elif identity.is_available():
        health_data["components"]["identity_platform"] = {"status": "configured"}
    else:
        health_data["components"]["identity_platform"] = {"status": "unconfigured"}
        health_data["status"] = "degraded"

    if outbox is None:
        health_data["components"]["sso_outbox"] = {"status": "disabled"}
    elif await outbox.ping():
        try:
            pending = await outbox.pending_count()
        except Exception as e:
            logger.warning("Outbox length check failed", error=str(e))
            pending = None
        health_data["components"]["sso_outbox"] = {"status": "healthy", "pending": pending}
    else:
        # Outbox is best-effort, signups keep working without it
        health_data["components"]["sso_outbox"] = {"status": "unhealthy"}

    return health_data
