"""
Business logic services for the custom SSO service
"""

from .sso_service import SSOProxyService, resolve_action
from .reconciler import SSOLinkReconciler, DrainResult

__all__ = ["SSOProxyService", "resolve_action", "SSOLinkReconciler", "DrainResult"]
