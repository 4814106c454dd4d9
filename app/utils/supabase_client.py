"""
Supabase Client Configuration
Identity platform administration: users, profiles, SSO links and session issuance
"""

import asyncio
from typing import Any, Dict, Optional

import structlog
from supabase import create_client, Client, ClientOptions

from app.config import Settings
from app.utils.exceptions import IdentityPlatformError
from shared.schemas.sso import IdentityRecord, PlatformSession, SSOIntegrationRow

logger = structlog.get_logger(__name__)


def _non_persistent_options() -> ClientOptions:
    """Server-side clients must never cache or refresh a user session"""
    return ClientOptions(auto_refresh_token=False, persist_session=False)


def _normalize_email(email: Optional[str]) -> Optional[str]:
    """profiles.email is constrained to lower case"""
    return email.strip().lower() if email else email


def _to_identity_record(user: Any) -> IdentityRecord:
    return IdentityRecord(
        id=str(user.id),
        email=user.email,
        metadata=dict(user.user_metadata or {}),
        created_at=user.created_at
    )


class SupabaseClient:
    """Supabase admin wrapper for the custom SSO proxy"""

    def __init__(self, settings: Settings):
        self.url: str = settings.supabase_url
        self.service_key: str = settings.supabase_service_role_key
        self.anon_key: str = settings.supabase_anon_key
        self.profiles_table: str = settings.profiles_table
        self.sso_table: str = settings.sso_integrations_table
        self.client: Optional[Client] = None
        self.session_client: Optional[Client] = None

        if self.url and self.service_key:
            try:
                self.client = create_client(self.url, self.service_key, options=_non_persistent_options())
                logger.info("Supabase admin client initialized successfully")
            except Exception as e:
                logger.error("Failed to initialize Supabase client", error=str(e))
                self.client = None
        else:
            logger.warning("Supabase credentials not found in environment")

        # Anon client shared by all logins, used only to verify link tokens
        if self.client and self.anon_key:
            try:
                self.session_client = create_client(self.url, self.anon_key, options=_non_persistent_options())
            except Exception as e:
                logger.error("Failed to initialize Supabase session client", error=str(e))
                self.session_client = None

    def is_available(self) -> bool:
        """Check if Supabase is available and configured"""
        return self.client is not None

    def _require_client(self) -> Client:
        if not self.client:
            raise IdentityPlatformError("Identity platform not available")
        return self.client

    def _require_session_client(self) -> Client:
        if not self.session_client:
            raise IdentityPlatformError("Identity platform anon key not configured")
        return self.session_client

    async def create_user(self, email: str, password: str, metadata: Dict[str, Any]) -> IdentityRecord:
        """
        Create a pre-confirmed identity user

        Args:
            email: User email
            password: User password
            metadata: user_metadata stored with the user

        Returns:
            IdentityRecord: created user
        """
        client = self._require_client()
        attributes = {
            "email": email,
            "password": password,
            "user_metadata": metadata,
            "email_confirm": True
        }

        try:
            response = await asyncio.to_thread(client.auth.admin.create_user, attributes)
        except Exception as e:
            logger.error("Supabase user creation failed", email=email, error=str(e))
            raise IdentityPlatformError("User creation failed")

        if not response or not response.user:
            logger.error("Supabase user creation returned no user", email=email)
            raise IdentityPlatformError("User creation failed")

        logger.info("Identity user created", email=email, user_id=response.user.id)
        return _to_identity_record(response.user)

    async def delete_user(self, user_id: str) -> None:
        """Delete an identity user"""
        client = self._require_client()
        try:
            await asyncio.to_thread(client.auth.admin.delete_user, user_id)
            logger.info("Identity user deleted", user_id=user_id)
        except Exception as e:
            logger.error("Supabase user deletion failed", user_id=user_id, error=str(e))
            raise IdentityPlatformError("User deletion failed")

    async def get_user(self, user_id: str) -> Optional[IdentityRecord]:
        client = self._require_client()
        try:
            response = await asyncio.to_thread(client.auth.admin.get_user_by_id, user_id)
        except Exception as e:
            logger.error("Supabase user fetch failed", user_id=user_id, error=str(e))
            raise IdentityPlatformError("Failed to find user")

        if not response or not response.user:
            return None
        return _to_identity_record(response.user)

    async def find_user_by_email(self, email: str) -> Optional[IdentityRecord]:
        """
        Find the identity user for an email

        Uses the unique email index on the profiles table rather than
        listing every auth user.
        """
        client = self._require_client()

        def _query():
            return (
                client.table(self.profiles_table)
                .select("id")
                .eq("email", _normalize_email(email))
                .limit(1)
                .execute()
            )

        try:
            result = await asyncio.to_thread(_query)
        except Exception as e:
            logger.error("Profile lookup failed", email=email, error=str(e))
            raise IdentityPlatformError("Failed to find user")

        rows = result.data or []
        if not rows:
            return None

        return await self.get_user(rows[0]["id"])

    async def upsert_profile(self, record: IdentityRecord, full_name: Optional[str]) -> None:
        """Write the profile row for an identity user"""
        client = self._require_client()
        row = {
            "id": record.id,
            "email": _normalize_email(record.email),
            "full_name": full_name
        }

        def _upsert():
            return client.table(self.profiles_table).upsert(row, on_conflict="id").execute()

        try:
            await asyncio.to_thread(_upsert)
        except Exception as e:
            logger.error("Profile upsert failed", user_id=record.id, error=str(e))
            raise IdentityPlatformError("Profile creation failed")

    async def insert_sso_integration(self, row: SSOIntegrationRow) -> SSOIntegrationRow:
        """
        Insert an SSO integration row

        Conflicts on (user_id, provider) are ignored so retries never
        create a second link for the same user and provider.
        """
        client = self._require_client()

        def _insert():
            return (
                client.table(self.sso_table)
                .upsert(row.insert_payload(), on_conflict="user_id,provider", ignore_duplicates=True)
                .execute()
            )

        try:
            result = await asyncio.to_thread(_insert)
        except Exception as e:
            raise IdentityPlatformError(f"SSO integration insert failed: {e}")

        stored = (result.data or [None])[0]
        if stored:
            return SSOIntegrationRow.model_validate(stored)
        return row

    async def issue_session(self, email: str) -> PlatformSession:
        """
        Issue a session for an existing user

        Generates a magic link with the admin API and verifies its hashed
        token on a throwaway anon client, which yields access and refresh
        tokens without sending any email.
        """
        client = self._require_client()

        try:
            link = await asyncio.to_thread(
                client.auth.admin.generate_link,
                {"type": "magiclink", "email": email}
            )
            properties = link.properties
            verification_type = getattr(properties, "verification_type", None) or "magiclink"

            session_client = self._require_session_client()
            response = await asyncio.to_thread(
                session_client.auth.verify_otp,
                {"type": verification_type, "token_hash": properties.hashed_token}
            )
        except IdentityPlatformError:
            raise
        except Exception as e:
            logger.error("Session generation failed", email=email, error=str(e))
            raise IdentityPlatformError("Failed to generate session")

        session = response.session if response else None
        if not session:
            logger.error("Session generation returned no session", email=email)
            raise IdentityPlatformError("Failed to generate session")

        return PlatformSession(
            access_token=session.access_token,
            refresh_token=session.refresh_token,
            expires_in=session.expires_in,
            expires_at=session.expires_at,
            token_type=session.token_type or "bearer"
        )

