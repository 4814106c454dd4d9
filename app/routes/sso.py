"""
Custom SSO Routes
The single proxy function: signup and login forwarding
"""

from fastapi import APIRouter, Response, status
from fastapi.responses import JSONResponse
import structlog

from app.utils.dependencies import SSOServiceDep
from shared.schemas.sso import SSORequest, SignupResponse

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.options("/custom-sso")
async def custom_sso_preflight():
    """Pre-flight requests get an empty body; CORS headers come from the middleware"""
    return Response(status_code=status.HTTP_200_OK)


@router.post("/custom-sso")
async def custom_sso(payload: SSORequest, service: SSOServiceDep):
    """
    Custom SSO proxy

    Dispatches on `action`: `signup` creates the backend user and mirrors it,
    `login` validates credentials and issues a platform session.
    """
    logger.info("Custom SSO request", action=payload.action, email=payload.email)

    result = await service.handle(payload)

    status_code = status.HTTP_201_CREATED if isinstance(result, SignupResponse) else status.HTTP_200_OK
    return JSONResponse(
        status_code=status_code,
        content=result.model_dump(mode="json")
    )
