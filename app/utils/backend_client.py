"""
Backend Auth Service HTTP Client
Client for forwarding credentials to the team backend (signup and login)

Connection pooling follows the httpx guidance:
- Single shared AsyncClient initialized at app startup
- Limits to prevent connection exhaustion
- Pool timeout for fast failure under load
"""

import httpx
import structlog
from typing import Optional, Dict, Any, List

from app.config import Settings
from app.utils.exceptions import BackendServiceError
from shared.schemas.sso import BackendUser

logger = structlog.get_logger(__name__)


class BackendAuthClient:
    """
    HTTP client for the backend auth service.

    Lifecycle:
        - Call start() during app startup (FastAPI lifespan)
        - Call stop() during app shutdown
        - If not started, falls back to a per-request client
    """

    SIGNUP_ENDPOINT = "/users/signup"
    LOGIN_ENDPOINT = "/auth/login"

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = settings.backend_base_url
        self._settings = settings
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _timeout(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self._settings.backend_connect_timeout,
            read=self._settings.backend_read_timeout,
            write=self._settings.backend_write_timeout,
            pool=self._settings.backend_pool_timeout
        )

    async def start(self):
        """Initialize the shared HTTP client"""
        if self._client is not None:
            logger.warning("BackendAuthClient already started")
            return

        limits = httpx.Limits(
            max_connections=self._settings.backend_max_connections,
            max_keepalive_connections=self._settings.backend_max_keepalive,
            keepalive_expiry=self._settings.backend_keepalive_expiry
        )

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            limits=limits,
            timeout=self._timeout(),
            transport=self._transport
        )

        logger.info(
            "BackendAuthClient started",
            base_url=self.base_url,
            max_connections=self._settings.backend_max_connections
        )

    async def stop(self):
        """Close the HTTP client and release resources"""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("BackendAuthClient stopped")

    @staticmethod
    def _response_body(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return response.text

    async def _post(self, endpoint: str, payload: Dict[str, Any], failure_message: str) -> Any:
        """POST JSON to the backend, raising BackendServiceError on any failure"""
        try:
            if self._client:
                response = await self._client.post(endpoint, json=payload)
            else:
                logger.warning("BackendAuthClient not initialized, using per-request client")
                async with httpx.AsyncClient(
                    base_url=self.base_url,
                    timeout=self._timeout(),
                    transport=self._transport
                ) as client:
                    response = await client.post(endpoint, json=payload)

        except httpx.PoolTimeout:
            logger.error("Connection pool exhausted calling backend", endpoint=endpoint)
            raise BackendServiceError(
                f"{failure_message}: backend temporarily unavailable",
                status_code=503
            )
        except httpx.RequestError as e:
            logger.error("Request error calling backend", endpoint=endpoint, error=str(e))
            raise BackendServiceError(f"{failure_message}: backend unreachable")

        body = self._response_body(response)
        if not response.is_success:
            logger.error(
                "Backend returned error",
                endpoint=endpoint,
                status_code=response.status_code,
                body=body
            )
            raise BackendServiceError.from_response(failure_message, response.status_code, body)

        return body

    async def signup(self, email: str, password: str, name: str, roles: List[str]) -> BackendUser:
        """Create a user in the backend"""
        payload = {
            "email": email,
            "password": password,
            "name": name,
            "roles": roles
        }

        logger.info("Forwarding signup to backend", email=email)
        body = await self._post(self.SIGNUP_ENDPOINT, payload, "Backend signup failed")

        if not isinstance(body, dict):
            raise BackendServiceError(
                "Backend signup failed: unexpected response",
                upstream_status=200,
                upstream_body=body
            )

        body.setdefault("email", email)
        if not body.get("roles"):
            body["roles"] = roles

        try:
            backend_user = BackendUser.model_validate(body)
        except ValueError:
            raise BackendServiceError(
                "Backend signup failed: response missing user id",
                upstream_status=200,
                upstream_body=body
            )

        logger.info("Backend user created", email=email, backend_user_id=backend_user.id)
        return backend_user

    async def login(self, email: str, password: str) -> str:
        """Validate credentials, returning the backend access token"""
        logger.info("Forwarding login to backend", email=email)
        body = await self._post(
            self.LOGIN_ENDPOINT,
            {"email": email, "password": password},
            "Backend login failed"
        )

        token = body.get("access_token") if isinstance(body, dict) else None
        if not token:
            raise BackendServiceError(
                "Backend login failed: no access token returned",
                upstream_status=200,
                upstream_body=body
            )

        return token
