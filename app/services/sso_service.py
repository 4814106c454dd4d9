"""
Custom SSO Service
Signup and login orchestration between the backend auth service and the identity platform
"""

from typing import List, Optional

import structlog

from app.config import Settings
from app.utils.backend_client import BackendAuthClient
from app.utils.exceptions import (
    DuplicateIdentityError,
    IdentityNotFoundError,
    IdentityPlatformError,
    InvalidActionError,
    InvalidRequestError,
)
from app.utils.outbox import SSOLinkOutbox
from app.utils.supabase_client import SupabaseClient
from shared.schemas.sso import (
    ACTION_ALIASES,
    CUSTOM_PROVIDER,
    BackendUser,
    IdentityRecord,
    LoginResponse,
    ProxyAction,
    SignupResponse,
    SSOIntegrationRow,
    SSORequest,
)
from shared.utils.logger import get_audit_logger

logger = structlog.get_logger(__name__)


def resolve_action(raw: Optional[str]) -> ProxyAction:
    """Map the request discriminator onto the canonical action set"""
    value = (raw or "").strip().lower()
    if value in ACTION_ALIASES:
        logger.warning("Deprecated proxy action alias used", action=value)
        return ACTION_ALIASES[value]
    try:
        return ProxyAction(value)
    except ValueError:
        raise InvalidActionError(raw)


class SSOProxyService:
    """Forwards credentials to the backend and mirrors identities into Supabase"""

    def __init__(
        self,
        settings: Settings,
        backend: BackendAuthClient,
        identity: SupabaseClient,
        outbox: Optional[SSOLinkOutbox] = None
    ):
        self.settings = settings
        self.backend = backend
        self.identity = identity
        self.outbox = outbox
        self.audit = get_audit_logger()

    async def handle(self, request: SSORequest):
        """Dispatch one proxy request"""
        action = resolve_action(request.action)

        if not request.email or not request.password:
            raise InvalidRequestError("Email and password are required")

        if action is ProxyAction.SIGNUP:
            return await self.signup(request.email, request.password, request.name, request.roles)
        return await self.login(request.email, request.password)

    async def signup(
        self,
        email: str,
        password: str,
        name: Optional[str] = None,
        roles: Optional[List[str]] = None
    ) -> SignupResponse:
        """
        Register a user in the backend and mirror it into the identity platform

        Args:
            email: Normalised user email
            password: User password, forwarded as-is
            name: Display name
            roles: Backend roles, defaults to the configured roles

        Returns:
            SignupResponse: identity user and backend user
        """
        name = name or self.settings.default_signup_name
        roles = roles or list(self.settings.default_signup_roles)

        existing = await self.identity.find_user_by_email(email)
        if existing:
            self.audit.log_user_action("signup", email, "duplicate", user_id=existing.id)
            raise DuplicateIdentityError()

        backend_user = await self.backend.signup(email, password, name, roles)

        try:
            record = await self.identity.create_user(
                email,
                password,
                {
                    "full_name": name,
                    "backend_user_id": backend_user.id,
                    "roles": backend_user.roles or roles
                }
            )
        except IdentityPlatformError:
            # The backend has no delete endpoint, so its user stays behind
            logger.error(
                "Backend user left without identity record",
                email=email,
                backend_user_id=backend_user.id
            )
            self.audit.log_user_action(
                "signup", email, "identity_failed",
                details={"backend_user_id": backend_user.id}
            )
            raise IdentityPlatformError("User creation failed")

        try:
            await self.identity.upsert_profile(record, name)
        except IdentityPlatformError:
            await self._discard_identity(record)
            raise IdentityPlatformError("User creation failed")

        await self.record_sso_link(record, backend_user)

        self.audit.log_user_action(
            "signup", email, "success",
            user_id=record.id,
            details={"backend_user_id": backend_user.id}
        )
        return SignupResponse(user=record, backend_user=backend_user)

    async def _discard_identity(self, record: IdentityRecord) -> None:
        """Remove a half-provisioned identity user"""
        try:
            await self.identity.delete_user(record.id)
            logger.info("Rolled back identity user after profile failure", user_id=record.id)
        except IdentityPlatformError:
            logger.error(
                "Identity user rollback failed, manual cleanup required",
                user_id=record.id,
                email=record.email
            )

    async def record_sso_link(self, record: IdentityRecord, backend_user: BackendUser) -> bool:
        """
        Best-effort SSO integration row

        Failures never fail the signup; the row is handed to the outbox
        for the reconciler to retry.

        Returns:
            bool: whether the row was written inline
        """
        row = SSOIntegrationRow(
            user_id=record.id,
            provider=CUSTOM_PROVIDER,
            external_user_id=backend_user.id
        )

        try:
            await self.identity.insert_sso_integration(row)
            return True
        except IdentityPlatformError as e:
            logger.error("SSO integration record creation failed", user_id=record.id, error=e.message)
            if self.outbox is not None:
                await self.outbox.enqueue(row, e.message)
            return False

    async def login(self, email: str, password: str) -> LoginResponse:
        """
        Validate credentials with the backend and issue a platform session

        Returns:
            LoginResponse: backend token, platform session and identity user
        """
        backend_token = await self.backend.login(email, password)

        record = await self.identity.find_user_by_email(email)
        if record is None:
            if self.settings.login_require_identity:
                self.audit.log_user_action("login", email, "identity_missing")
                raise IdentityNotFoundError()
            record = await self._provision_identity(email, password)

        session = await self.identity.issue_session(email)

        self.audit.log_user_action("login", email, "success", user_id=record.id)
        return LoginResponse(backend_token=backend_token, session=session, user=record)

    async def _provision_identity(self, email: str, password: str) -> IdentityRecord:
        """Create an identity user for a backend account that has none"""
        logger.info("Provisioning identity user at login", email=email)
        record = await self.identity.create_user(
            email,
            password,
            {"full_name": None, "backend_user_id": None, "provisioned_at_login": True}
        )
        try:
            await self.identity.upsert_profile(record, None)
        except IdentityPlatformError:
            await self._discard_identity(record)
            raise IdentityPlatformError("User creation failed")
        return record
