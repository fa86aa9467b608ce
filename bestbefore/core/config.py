"""Configuration management for bestbefore."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Supabase Configuration
    supabase_url: str = Field(default="http://127.0.0.1:54321", description="Supabase project URL")
    supabase_anon_key: str | None = Field(default=None, description="Supabase anon (public) API key")
    supabase_access_token: str | None = Field(
        default=None, description="User access token (JWT) sent as bearer auth to the REST API"
    )

    # Local durable storage
    sqlite_db_path: str = Field(default="./data/bestbefore.db", description="SQLite file for the local key-value store")
    redis_url: str | None = Field(
        default=None, description="Redis connection URL; when set, Redis backs the local key-value store"
    )

    # Pydantic Logfire Configuration (optional)
    logfire_token: str | None = Field(default=None, description="Pydantic Logfire token for observability")

    # Expo push notifications
    expo_push_token: str | None = Field(
        default=None, description="Expo push token of the device; notifications are only permitted when set"
    )
    expo_push_url: str = Field(default="https://exp.host/--/api/v2/push/send", description="Expo push API endpoint")

    # Open Food Facts
    openfoodfacts_url: str = Field(
        default="https://world.openfoodfacts.net/api/v2/product", description="Open Food Facts product endpoint"
    )

    # Reminder Configuration
    default_reminder_days: int = Field(
        default=3, ge=0, description="Days before expiry to remind when no category override exists"
    )

    # Sync Configuration
    sync_interval_minutes: int = Field(default=15, ge=1, description="Minutes between background queue replays")
    sync_user_id: str | None = Field(
        default=None, description="Signed-in user whose queue the background job replays; the job is off when unset"
    )
    dead_letter_permanent_errors: bool = Field(
        default=True,
        description="Move queue entries that fail permanently to the dead-letter list instead of halting replay",
    )

    def require_credential(self, field_name: str, service_name: str) -> str:
        """Validate that a required credential is set, raising a clear error if missing.

        Args:
            field_name: Name of the field to check
            service_name: Human-readable service name for error message

        Returns:
            The credential value

        Raises:
            ValueError: If the credential is None or empty
        """
        value = getattr(self, field_name)
        if not value:
            raise ValueError(
                f"{service_name} credential not configured. "
                f"Set {field_name.upper()} environment variable or add to .env file."
            )
        return value


# Application Constants
class Constants:
    """Application-wide constants."""

    # API Configuration
    API_TIMEOUT_SECONDS: int = 30
    REMOTE_REQUEST_TIMEOUT_SECONDS: float = 15.0

    # HTTP Status Codes
    HTTP_OK: int = 200
    HTTP_BAD_REQUEST: int = 400
    HTTP_UNAUTHORIZED: int = 401
    HTTP_FORBIDDEN: int = 403
    HTTP_REQUEST_TIMEOUT: int = 408
    HTTP_TOO_MANY_REQUESTS: int = 429
    HTTP_SERVER_ERROR: int = 500
    HTTP_SERVICE_UNAVAILABLE: int = 503

    # Storage keys
    SYNC_QUEUE_KEY: str = "@BestBefore:syncQueue"
    DEAD_LETTER_SUFFIX: str = ":deadLetter"
    REMINDER_LEDGER_KEY_PREFIX: str = "@BestBefore:reminders"

    # Remote tables
    PRODUCTS_TABLE: str = "products"
    CATEGORY_REMINDERS_TABLE: str = "category_reminders"

    # Reminders
    REMINDER_TITLE: str = "Expiry Reminder"
    REMINDER_HOURS: tuple[int, ...] = (12, 20)  # noon and 8pm, local time
    FINAL_REMINDER_DAYS: int = 1

    # Redis
    REDIS_MAX_CONNECTIONS: int = 10
    REDIS_MAX_RETRIES: int = 3

    # Dead letter
    DEAD_LETTER_MAXLEN: int = 100


def get_settings() -> Settings:
    """Get application settings (singleton pattern)."""
    return Settings()


# Global settings instance
settings = get_settings()
constants = Constants()
