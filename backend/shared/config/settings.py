"""
Application settings loaded from environment variables.
Uses pydantic-settings for type-safe configuration.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings


# Storefront dev servers, allowed when ALLOWED_ORIGINS is empty
DEV_ORIGINS: tuple[str, ...] = (
    "http://localhost:3000",
    "http://localhost:5173",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5173",
)


class Settings(BaseSettings):
    """Application settings with defaults for development."""

    # Database
    database_url: str = "sqlite:///./storefront.db"

    # Comma-separated list of allowed origins (empty uses the default localhost list)
    allowed_origins: str = ""

    # Server
    rest_api_port: int = 3000

    # Environment
    environment: str = "development"
    debug: bool = True

    # Rate limiting (slowapi limit strings)
    order_create_rate_limit: str = "30/minute"
    discount_code_rate_limit: str = "20/minute"

    # WebSocket server
    ws_heartbeat_timeout: int = 90  # Connection considered stale after this many seconds
    ws_receive_timeout: float = 120.0  # Idle connections are closed after this many seconds
    ws_max_message_size: int = 16 * 1024  # 16 KB
    ws_max_total_connections: int = 2000
    ws_broadcast_batch_size: int = 50  # Sockets sent to in parallel per batch
    ws_heartbeat_cleanup_interval: float = 30.0

    # WebSocket client (reconnection manager defaults)
    client_max_reconnect_attempts: int = 5
    client_reconnect_delay: float = 1.0
    client_reconnect_delay_max: float = 5.0
    client_handshake_timeout: float = 20.0
    client_ping_interval: float = 30.0
    client_stable_connection_time: float = 5.0  # Shorter-lived connections count as failed attempts
    client_keepalive_interval: float = 20.0  # websockets protocol pings
    client_keepalive_timeout: float = 20.0  # Connection dropped when a ping goes unanswered this long

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False

    @property
    def origins(self) -> list[str]:
        """Browser origins allowed by CORS and by the WebSocket handshake."""
        if self.allowed_origins:
            return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]
        return list(DEV_ORIGINS)

    def validate_production_settings(self) -> list[str]:
        """
        Validate settings that must be changed before running in production.
        Returns a list of validation errors. Empty list means all checks pass.
        """
        errors = []

        if self.environment == "production":
            if self.debug:
                errors.append("DEBUG must be False in production")

            if not self.allowed_origins:
                errors.append("ALLOWED_ORIGINS must be configured in production")

            if self.database_url.startswith("sqlite"):
                errors.append("DATABASE_URL must point to a server database in production")

        return errors


@lru_cache
def get_settings() -> Settings:
    """Return the cached settings instance."""
    return Settings()


settings = get_settings()

DATABASE_URL = settings.database_url
