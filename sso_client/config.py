"""
Client Configuration
Environment-based settings for the session client
"""

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class ClientSettings(BaseSettings):
    """Session client configuration, read from SSO_CLIENT_* variables"""

    # Identity platform
    supabase_url: str = ""
    supabase_anon_key: str = ""

    # Proxy function, defaults to the Supabase functions path
    function_url: Optional[str] = None
    function_timeout: float = 30.0

    # Local persisted keys
    storage_path: str = "~/.custom-sso/storage.json"

    # Where the identity platform sends users back after OAuth
    oauth_redirect_to: Optional[str] = None

    model_config = SettingsConfigDict(
        env_prefix="SSO_CLIENT_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    def resolved_function_url(self) -> str:
        if self.function_url:
            return self.function_url
        if not self.supabase_url:
            raise ValueError("SSO_CLIENT_FUNCTION_URL or SSO_CLIENT_SUPABASE_URL must be set")
        return f"{self.supabase_url.rstrip('/')}/functions/v1/custom-sso"
