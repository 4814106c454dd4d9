from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
from typing import Optional


class Settings(BaseSettings):
    # App config
    app_name: str = "Custom SSO Service"
    service_name: str = "custom-sso"
    service_version: str = "1.0.0"
    debug: bool = False

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"
    logging_config_path: Optional[str] = None

    # Identity platform (Supabase)
    supabase_url: str = ""
    supabase_service_role_key: str = ""
    supabase_anon_key: str = ""
    profiles_table: str = "profiles"
    sso_integrations_table: str = "sso_integrations"

    # Backend auth service
    backend_base_url: str = "http://192.168.244.31:4078"
    backend_max_connections: int = 100
    backend_max_keepalive: int = 20
    backend_keepalive_expiry: float = 5.0
    backend_connect_timeout: float = 5.0
    backend_read_timeout: float = 30.0
    backend_write_timeout: float = 5.0
    backend_pool_timeout: float = 30.0

    # Signup / login behaviour
    default_signup_name: str = "User"
    default_signup_roles: list[str] = ["user"]
    login_require_identity: bool = True

    # SSO link outbox (Redis)
    redis_url: str = "redis://localhost:6379/0"
    sso_outbox_enabled: bool = True
    sso_outbox_drain_interval: float = 30.0
    sso_outbox_batch_size: int = 50
    sso_outbox_max_attempts: int = 5

    # CORS
    cors_origins: list[str] = ["*"]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator('backend_base_url')
    @classmethod
    def validate_backend_base_url(cls, v):
        """Accept host:port and default to http"""
        v = v.strip().rstrip('/')
        if not v:
            raise ValueError('BACKEND_BASE_URL must be set')
        if "://" not in v:
            v = f"http://{v}"
        return v

    @field_validator('sso_outbox_max_attempts')
    @classmethod
    def validate_max_attempts(cls, v):
        if v < 1:
            raise ValueError('SSO_OUTBOX_MAX_ATTEMPTS must be at least 1')
        return v

    @property
    def identity_platform_configured(self) -> bool:
        """Service-role and anon keys are both needed to issue sessions"""
        return bool(
            self.supabase_url
            and self.supabase_service_role_key
            and self.supabase_anon_key
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get settings instance"""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
