"""
Data models for the custom SSO service
"""

from .outbox import OutboxEntry

__all__ = ["OutboxEntry"]
