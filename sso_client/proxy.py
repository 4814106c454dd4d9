"""
Proxy Function Client
Invokes the custom SSO function over HTTP
"""

from typing import Any, Dict, Optional

import httpx
import structlog

logger = structlog.get_logger(__name__)


class ProxyCallError(Exception):
    """The proxy could not be reached or returned no usable body"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ProxyClient:
    """
    Thin client for the custom SSO function.

    Error responses from the function carry `{success: false, error}` and
    are returned as-is so the caller can surface the message.
    """

    def __init__(
        self,
        function_url: str,
        anon_key: str = "",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.function_url = function_url
        self.anon_key = anon_key
        self.timeout = timeout
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.anon_key:
            headers["apikey"] = self.anon_key
            headers["Authorization"] = f"Bearer {self.anon_key}"
        return headers

    async def invoke(self, body: Dict[str, Any]) -> Dict[str, Any]:
        """POST one action to the function"""
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.function_url, json=body, headers=self._headers())
        except httpx.RequestError as e:
            logger.error("Proxy function unreachable", action=body.get("action"), error=str(e))
            raise ProxyCallError(f"Failed to reach authentication service: {e}")

        try:
            data = response.json()
        except ValueError:
            raise ProxyCallError(
                f"Authentication service returned {response.status_code}",
                status_code=response.status_code
            )

        if not isinstance(data, dict):
            raise ProxyCallError("Unexpected response from authentication service", response.status_code)

        return data
