"""
SSO data schemas for the custom SSO bridge

Pydantic models shared by the auth proxy service and the session client.
"""

from typing import Optional, List, Dict, Any
from datetime import datetime
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, field_validator


CUSTOM_PROVIDER = "custom"


class ProxyAction(str, Enum):
    """Proxy action enumeration"""
    SIGNUP = "signup"
    LOGIN = "login"


# Older clients sent "signin" for the login action
ACTION_ALIASES = {
    "signin": ProxyAction.LOGIN,
}


class BackendUser(BaseModel):
    """User record returned by the backend auth service"""
    model_config = ConfigDict(extra="allow")

    id: str
    email: Optional[str] = None
    roles: List[str] = Field(default_factory=list)

    @field_validator('id', mode='before')
    @classmethod
    def coerce_id(cls, v):
        """Backend ids may be numeric"""
        if v is None or v == "":
            raise ValueError('Backend user id is required')
        return str(v)


class IdentityRecord(BaseModel):
    """Identity platform user"""
    id: str
    email: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None

    @property
    def backend_user_id(self) -> Optional[str]:
        value = self.metadata.get("backend_user_id")
        return str(value) if value is not None else None


class Profile(BaseModel):
    """Profile row keyed by identity user id"""
    id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    created_at: Optional[datetime] = None


class SSOIntegrationRow(BaseModel):
    """Link between an identity user and an external provider account"""
    id: Optional[str] = None
    user_id: str
    provider: str = CUSTOM_PROVIDER
    external_user_id: str
    created_at: Optional[datetime] = None

    @field_validator('external_user_id', 'user_id', mode='before')
    @classmethod
    def coerce_str(cls, v):
        return str(v) if v is not None else v

    def insert_payload(self) -> Dict[str, str]:
        """Columns written on insert, server fills id and created_at"""
        return {
            "user_id": self.user_id,
            "provider": self.provider,
            "external_user_id": self.external_user_id,
        }


class PlatformSession(BaseModel):
    """Identity platform session tokens"""
    access_token: str
    refresh_token: str
    expires_in: Optional[int] = None
    expires_at: Optional[int] = None
    token_type: str = "bearer"


class SSORequest(BaseModel):
    """Body accepted by the custom SSO function"""
    action: str
    email: Optional[str] = None
    password: Optional[str] = None
    name: Optional[str] = None
    roles: Optional[List[str]] = None

    @field_validator('email')
    @classmethod
    def normalize_email(cls, v):
        """Emails are matched case-insensitively"""
        if v is None:
            return v
        return v.strip().lower()


class SignupResponse(BaseModel):
    """Successful signup"""
    success: bool = True
    user: IdentityRecord
    backend_user: BackendUser


class LoginResponse(BaseModel):
    """Successful login"""
    success: bool = True
    backend_token: str
    session: PlatformSession
    user: IdentityRecord


class ErrorResponse(BaseModel):
    """Error envelope returned for every failed call"""
    success: bool = False
    error: str
    upstream_status: Optional[int] = None
    upstream_body: Optional[Any] = None
