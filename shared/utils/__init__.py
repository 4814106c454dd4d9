"""
Shared utilities for the custom SSO bridge

This package contains common utilities used by the proxy service and the session client.
"""

from .logger import setup_logging, get_logger, AuditLogger, get_audit_logger

__all__ = [
    "setup_logging",
    "get_logger",
    "AuditLogger",
    "get_audit_logger",
]

__version__ = "1.0.0"
