"""
Session Context
Client-side owner of the current session, backing the sign-up / sign-in screens
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import structlog
from supabase import AsyncClientOptions, acreate_client

from shared.schemas.sso import CUSTOM_PROVIDER, ProxyAction, Profile, SSOIntegrationRow
from sso_client.config import ClientSettings
from sso_client.notifications import Notification, NotificationVariant, Notifier, log_notifier
from sso_client.proxy import ProxyCallError, ProxyClient
from sso_client.storage import BACKEND_USER_KEY, PlatformSessionStorage, TokenStore

logger = structlog.get_logger(__name__)


class SessionState(str, Enum):
    """Client session state"""
    UNKNOWN = "unknown"
    LOADING = "loading"
    AUTHENTICATED = "authenticated"
    ANONYMOUS = "anonymous"


class ErrorKind(str, Enum):
    """Which step of an operation failed"""
    PROXY = "proxy"
    SESSION = "session"
    PLATFORM = "platform"
    STORAGE = "storage"


@dataclass(frozen=True)
class AuthResult:
    error: Optional[str] = None
    kind: Optional[ErrorKind] = None
    redirect_url: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class SessionSnapshot:
    state: SessionState
    user: Optional[Any]
    session: Optional[Any]
    loading: bool


@dataclass
class UserProfile:
    """Data shown by the profile viewer"""
    profile: Optional[Profile] = None
    integrations: List[SSOIntegrationRow] = field(default_factory=list)


Listener = Callable[[SessionSnapshot], None]


class SessionContext:
    """
    Owns {user, session, loading} for one client.

    Construction wires the collaborators; start() subscribes to session
    changes and fetches any persisted session; close() unsubscribes.
    Both the subscription and the initial fetch update state through
    _apply_session. Concurrent sign-ins are not serialized: the last one
    to resolve wins.
    """

    def __init__(
        self,
        supabase: Any,
        proxy: ProxyClient,
        storage: TokenStore,
        notifier: Notifier = log_notifier,
        oauth_redirect_to: Optional[str] = None,
        profiles_table: str = "profiles",
        sso_integrations_table: str = "sso_integrations"
    ):
        self._supabase = supabase
        self._auth = supabase.auth
        self._proxy = proxy
        self._storage = storage
        self._notifier = notifier
        self._oauth_redirect_to = oauth_redirect_to
        self._profiles_table = profiles_table
        self._sso_table = sso_integrations_table

        self._state = SessionState.UNKNOWN
        self._user: Optional[Any] = None
        self._session: Optional[Any] = None
        self._loading = True
        self._subscription: Optional[Any] = None
        self._listeners: List[Listener] = []

    @classmethod
    async def from_settings(cls, settings=None, notifier: Notifier = log_notifier) -> "SessionContext":
        """Build a context backed by a real identity platform client"""
        settings = settings or ClientSettings()
        storage = TokenStore(settings.storage_path)
        supabase = await acreate_client(
            settings.supabase_url,
            settings.supabase_anon_key,
            options=AsyncClientOptions(storage=PlatformSessionStorage(storage))
        )
        proxy = ProxyClient(
            settings.resolved_function_url(),
            anon_key=settings.supabase_anon_key,
            timeout=settings.function_timeout
        )
        return cls(
            supabase,
            proxy,
            storage,
            notifier=notifier,
            oauth_redirect_to=settings.oauth_redirect_to
        )

    # State

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def user(self) -> Optional[Any]:
        return self._user

    @property
    def session(self) -> Optional[Any]:
        return self._session

    @property
    def loading(self) -> bool:
        return self._loading

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            state=self._state,
            user=self._user,
            session=self._session,
            loading=self._loading
        )

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Register a view callback; returns a function removing it"""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _apply_session(self, session: Optional[Any]) -> None:
        self._session = session
        self._user = getattr(session, "user", None) if session else None
        self._loading = False
        self._state = SessionState.AUTHENTICATED if session else SessionState.ANONYMOUS

        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error("Session listener failed", error=str(e), exc_info=True)

    def _on_auth_state_change(self, event: Any, session: Optional[Any]) -> None:
        logger.debug("Auth state changed", auth_event=str(event))
        self._apply_session(session)

    # Lifecycle

    async def start(self) -> "SessionContext":
        """Subscribe to session changes, then load any persisted session"""
        if self._subscription is not None:
            return self

        self._state = SessionState.LOADING
        self._subscription = self._auth.on_auth_state_change(self._on_auth_state_change)

        try:
            session = await self._auth.get_session()
        except Exception as e:
            logger.error("Failed to load persisted session", error=str(e))
            session = None

        # A notification may already have resolved the state
        if self._loading or session is not None:
            self._apply_session(session)
        return self

    async def close(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    async def __aenter__(self) -> "SessionContext":
        return await self.start()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # Notifications

    def _notify(self, title: str, description: str, destructive: bool = False) -> None:
        variant = NotificationVariant.DESTRUCTIVE if destructive else NotificationVariant.DEFAULT
        try:
            self._notifier(Notification(title=title, description=description, variant=variant))
        except Exception as e:
            logger.error("Notifier failed", error=str(e))

    def _clear_local_credentials(self) -> Optional[str]:
        """Drop the backend token and marker; returns the error text if the store could not be written"""
        try:
            self._storage.clear_backend_credentials()
        except OSError as e:
            logger.error("Local credential clear failed", path=str(self._storage.path), error=str(e))
            return str(e)
        return None

    async def _invoke(self, body: Dict[str, Any], default_error: str) -> Dict[str, Any]:
        """Call the proxy; any transport failure or success=false raises ProxyCallError"""
        data = await self._proxy.invoke(body)
        if not data.get("success"):
            raise ProxyCallError(data.get("error") or default_error)
        return data

    # Operations

    async def sign_up(self, email: str, password: str, full_name: Optional[str] = None) -> AuthResult:
        """Create the account; does not sign the user in"""
        body = {
            "action": ProxyAction.SIGNUP.value,
            "email": email,
            "password": password,
            "name": full_name or "User"
        }

        try:
            await self._invoke(body, "Signup failed")
        except ProxyCallError as e:
            self._notify("Signup Error", e.message, destructive=True)
            return AuthResult(error=e.message, kind=ErrorKind.PROXY)

        self._notify("Success", "Account created successfully! You can now sign in.")
        return AuthResult()

    async def sign_in(self, email: str, password: str) -> AuthResult:
        """
        Log in through the proxy and establish the platform session

        A failure after the proxy accepted the credentials is reported as
        ErrorKind.SESSION and leaves nothing persisted.
        """
        body = {
            "action": ProxyAction.LOGIN.value,
            "email": email,
            "password": password
        }

        try:
            data = await self._invoke(body, "Login failed")
        except ProxyCallError as e:
            self._notify("Login Error", e.message, destructive=True)
            return AuthResult(error=e.message, kind=ErrorKind.PROXY)

        self._storage.set_backend_token(data.get("backend_token"))
        self._storage.set(BACKEND_USER_KEY, {"email": email, "authenticated": True})

        tokens = data.get("session") or {}
        try:
            response = await self._auth.set_session(tokens["access_token"], tokens["refresh_token"])
        except Exception as e:
            logger.error("Session creation failed after proxy login", email=email, error=str(e))
            self._clear_local_credentials()
            message = "Your credentials were accepted but the session could not be created"
            self._notify("Session Error", message, destructive=True)
            return AuthResult(error=message, kind=ErrorKind.SESSION)

        session = getattr(response, "session", None)
        if session is not None:
            self._apply_session(session)

        self._notify("Welcome back!", "You have successfully logged in.")
        return AuthResult()

    async def sign_out(self) -> AuthResult:
        """Always ends in ANONYMOUS, even when the platform call or local storage fails"""
        error = None
        kind = None
        storage_error = self._clear_local_credentials()
        if storage_error:
            error = f"Failed to clear local credentials: {storage_error}"
            kind = ErrorKind.STORAGE

        try:
            await self._auth.sign_out()
        except Exception as e:
            error = str(e)
            kind = ErrorKind.PLATFORM
            logger.warning("Platform sign-out failed", error=error)

        self._apply_session(None)

        if error:
            self._notify("Error", error, destructive=True)
            return AuthResult(error=error, kind=kind)

        self._notify("Logged out", "You have been successfully logged out.")
        return AuthResult()

    async def sign_in_with_sso(self, provider: str) -> AuthResult:
        """
        Start a federated login

        The custom provider has no redirect flow and points the user at
        the credential form. Other providers return the OAuth URL; the
        result arrives later through the session subscription.
        """
        if provider == CUSTOM_PROVIDER:
            self._notify("Custom SSO", "Please use the sign in form for custom backend authentication.")
            return AuthResult()

        credentials: Dict[str, Any] = {"provider": provider}
        if self._oauth_redirect_to:
            credentials["options"] = {"redirect_to": self._oauth_redirect_to}

        try:
            response = await self._auth.sign_in_with_oauth(credentials)
        except Exception as e:
            self._notify("SSO Error", str(e), destructive=True)
            return AuthResult(error=str(e), kind=ErrorKind.PLATFORM)

        return AuthResult(redirect_url=getattr(response, "url", None))

    async def load_profile(self) -> Optional[UserProfile]:
        """Profile row and SSO links for the signed-in user"""
        if self._user is None:
            return None

        user_id = str(self._user.id)
        result = UserProfile()

        try:
            response = await (
                self._supabase.table(self._profiles_table)
                .select("*")
                .eq("id", user_id)
                .single()
                .execute()
            )
            if response.data:
                result.profile = Profile.model_validate(response.data)
        except Exception as e:
            logger.error("Error fetching profile", user_id=user_id, error=str(e))

        try:
            response = await (
                self._supabase.table(self._sso_table)
                .select("*")
                .eq("user_id", user_id)
                .execute()
            )
            result.integrations = [SSOIntegrationRow.model_validate(row) for row in response.data or []]
        except Exception as e:
            logger.error("Error fetching SSO integrations", user_id=user_id, error=str(e))

        return result
