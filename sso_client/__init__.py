"""
Session client for the custom SSO bridge
"""

from .config import ClientSettings
from .notifications import Notification, NotificationVariant, log_notifier
from .proxy import ProxyCallError, ProxyClient
from .session import AuthResult, ErrorKind, SessionContext, SessionSnapshot, SessionState, UserProfile
from .storage import PlatformSessionStorage, TokenStore

__all__ = [
    "ClientSettings",
    "Notification",
    "NotificationVariant",
    "log_notifier",
    "ProxyCallError",
    "ProxyClient",
    "AuthResult",
    "ErrorKind",
    "SessionContext",
    "SessionSnapshot",
    "SessionState",
    "UserProfile",
    "PlatformSessionStorage",
    "TokenStore",
]
