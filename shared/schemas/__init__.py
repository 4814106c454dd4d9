"""
Shared data schemas for the custom SSO bridge

This package contains the data contract shared by the proxy service and the session client.
"""

from .sso import (
    CUSTOM_PROVIDER,
    ProxyAction,
    BackendUser,
    IdentityRecord,
    Profile,
    SSOIntegrationRow,
    PlatformSession,
    SSORequest,
    SignupResponse,
    LoginResponse,
    ErrorResponse,
)

__all__ = [
    "CUSTOM_PROVIDER",
    "ProxyAction",
    "BackendUser",
    "IdentityRecord",
    "Profile",
    "SSOIntegrationRow",
    "PlatformSession",
    "SSORequest",
    "SignupResponse",
    "LoginResponse",
    "ErrorResponse",
]

__version__ = "1.0.0"
