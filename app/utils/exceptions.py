"""
Proxy Errors
Typed failures rendered into the JSON error envelope by the app exception handler
"""

from typing import Any, Dict, Optional


class ProxyError(Exception):
    """Base class for failures returned to the caller"""

    status_code = 400

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        upstream_status: Optional[int] = None,
        upstream_body: Optional[Any] = None
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.upstream_status = upstream_status
        self.upstream_body = upstream_body

    def to_dict(self) -> Dict[str, Any]:
        content: Dict[str, Any] = {"success": False, "error": self.message}
        if self.upstream_status is not None:
            content["upstream_status"] = self.upstream_status
            content["upstream_body"] = self.upstream_body
        return content


class InvalidActionError(ProxyError):
    status_code = 400

    def __init__(self, action: Optional[str] = None):
        super().__init__("Invalid action")
        self.action = action


class InvalidRequestError(ProxyError):
    status_code = 400


class BackendServiceError(ProxyError):
    """Backend auth service failed or could not be reached"""

    status_code = 502

    @classmethod
    def from_response(cls, message: str, status: int, body: Any) -> "BackendServiceError":
        # Client errors keep their status so callers can tell bad credentials from outages
        status_code = status if 400 <= status < 500 else 502
        return cls(message, status_code=status_code, upstream_status=status, upstream_body=body)


class IdentityPlatformError(ProxyError):
    """Identity platform administrative call failed"""

    status_code = 500


class IdentityNotFoundError(ProxyError):
    status_code = 404

    def __init__(self, message: str = "User not found"):
        super().__init__(message)


class DuplicateIdentityError(ProxyError):
    status_code = 409

    def __init__(self, message: str = "User already exists"):
        super().__init__(message)
