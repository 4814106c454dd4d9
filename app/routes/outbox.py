"""
SSO link outbox routes
Manual reconciliation for operators
"""

from fastapi import APIRouter, HTTPException, Query, Request, status
import structlog

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.post("/drain")
async def drain_outbox(request: Request, limit: int = Query(50, ge=1, le=1000)):
    """Retry pending SSO links now instead of waiting for the background loop"""
    reconciler = getattr(request.app.state, "reconciler", None)
    if reconciler is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="SSO outbox disabled"
        )

    result = await reconciler.drain(limit)
    logger.info("Manual outbox drain", **result.to_dict())
    return {"success": True, **result.to_dict()}
