from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_JWT_SECRET = "courier-orders-jwt-secret"
MIN_SECRET_LENGTH = 32


class Settings(BaseSettings):
    app_name: str = "Courier Orders Service"

    database_url: str = Field(
        default="sqlite+pysqlite:///./test.db",
        validation_alias="COURIER_DATABASE_URL",
    )
    cors_allowed_origins: str = "http://localhost:3000,http://localhost:5173"

    jwt_secret: str = DEFAULT_JWT_SECRET
    allowed_roles: str = "OWNER,RIDER,CUSTOMER"
    enable_test_auth_bypass: bool = False
    testing: bool = Field(default=False, validation_alias="COURIER_TESTING")
    auto_create_schema: bool = False

    lifecycle_event_workers: int = 4

    notification_webhook_url: str = ""
    notification_timeout_s: float = 2.0
    notification_max_retries: int = 2
    notification_backoff_s: float = 0.2

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    @field_validator("lifecycle_event_workers")
    @classmethod
    def validate_lifecycle_event_workers(cls, value: int) -> int:
        if value < 1:
            raise ValueError("LIFECYCLE_EVENT_WORKERS must be >= 1")
        return value


settings = Settings()


def allowed_origins() -> list[str]:
    return [origin.strip() for origin in settings.cors_allowed_origins.split(",") if origin.strip()]


def allowed_roles_list() -> list[str]:
    return [value.strip() for value in settings.allowed_roles.split(",") if value.strip()]


def ensure_secure_runtime_settings() -> None:
    """Fail fast when production-like runtime uses insecure defaults."""
    if settings.testing:
        return
    if settings.jwt_secret == DEFAULT_JWT_SECRET:
        raise RuntimeError(
            "JWT_SECRET must be set to a non-default value when COURIER_TESTING is false"
        )
    if len(settings.jwt_secret) < MIN_SECRET_LENGTH:
        raise RuntimeError(
            "JWT_SECRET must be at least "
            f"{MIN_SECRET_LENGTH} characters when COURIER_TESTING is false"
        )
    if settings.auto_create_schema:
        raise RuntimeError("AUTO_CREATE_SCHEMA must be disabled when COURIER_TESTING is false")
    if _is_sqlite_url(settings.database_url):
        raise RuntimeError("COURIER_DATABASE_URL must use postgres when COURIER_TESTING is false")


def _is_sqlite_url(database_url: str) -> bool:
    value = database_url.strip().lower()
    return value.startswith("sqlite")
