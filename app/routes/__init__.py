"""
API routes for the custom SSO service
"""

from . import health, outbox, sso

__all__ = ["health", "outbox", "sso"]
