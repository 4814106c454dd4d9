"""
FastAPI Dependencies
Service lookups from application state
"""

from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request, status

from app.services.sso_service import SSOProxyService
from app.utils.outbox import SSOLinkOutbox


def get_sso_service(request: Request) -> SSOProxyService:
    """Proxy service built during startup"""
    service = getattr(request.app.state, "sso_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not initialized"
        )
    return service


def get_outbox(request: Request) -> Optional[SSOLinkOutbox]:
    return getattr(request.app.state, "outbox", None)


# Type aliases for cleaner dependency injection
SSOServiceDep = Annotated[SSOProxyService, Depends(get_sso_service)]
OutboxDep = Annotated[Optional[SSOLinkOutbox], Depends(get_outbox)]
