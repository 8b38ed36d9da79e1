from __future__ import annotations

from typing import ClassVar, final

from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [x.strip() for x in value.split(",") if x.strip()]


@final
class Settings(BaseSettings):
    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )
    app_name: str = "Shift Sync"
    api_prefix: str = "/api"

    # Environment (ENVIRONMENT): development | production
    environment: str = "development"

    database_url: str = "sqlite:///./dev.db"

    # Primary env: CORS_ALLOW_ORIGINS; also accept CORS_ORIGINS as alias.
    cors_allow_origins: str = Field(
        default="*",
        validation_alias=AliasChoices("CORS_ALLOW_ORIGINS", "CORS_ORIGINS"),
    )

    log_level: str = "INFO"

    # Bearer tokens issued by /login (HMAC signed, see auth_tokens.py).
    auth_token_secret: str = "auth_token_secret_change_me"
    auth_token_max_age_seconds: int = 60 * 60 * 24  # 1 day

    # Client lastModified values further ahead of server time than this are clamped
    # before last-writer-wins arbitration.
    sync_max_client_clock_skew_seconds: int = 300

    # If true, use X-Forwarded-For to determine client IP. Only enable behind a trusted proxy.
    trust_x_forwarded_for: bool = False

    # Login throttling (best-effort; to reduce brute-force)
    rate_limit_window_seconds: int = 60 * 5
    rate_limit_retention_seconds: int = 60 * 60 * 24
    rate_limit_cleanup_interval_seconds: int = 60 * 10
    auth_login_rate_limit_per_ip: int = 30
    auth_login_rate_limit_per_ip_user: int = 10

    # Validate production settings early to fail fast on unsafe defaults.
    @model_validator(mode="after")
    def _validate_production_settings(self) -> "Settings":  # pyright: ignore[reportUnusedFunction]
        if self.environment.strip().lower() != "production":
            return self

        errors: list[str] = []

        secret = self.auth_token_secret.strip()
        if not secret or secret == "auth_token_secret_change_me":
            errors.append("AUTH_TOKEN_SECRET must be set in production")

        cors_v = self.cors_allow_origins.strip()
        if not cors_v or cors_v == "*":
            errors.append("CORS_ALLOW_ORIGINS must be explicit (not '*') in production")

        if self.sync_max_client_clock_skew_seconds < 0:
            errors.append("SYNC_MAX_CLIENT_CLOCK_SKEW_SECONDS must not be negative")

        if errors:
            raise ValueError("Invalid production settings: " + "; ".join(errors))
        return self

    def cors_origins_list(self) -> list[str]:
        v = self.cors_allow_origins.strip()
        if not v:
            return []
        if v == "*":
            return ["*"]
        return _split_csv(v)

    def security_warnings(self) -> list[str]:
        warnings: list[str] = []
        secret = self.auth_token_secret.strip()
        if not secret or secret == "auth_token_secret_change_me":
            warnings.append("AUTH_TOKEN_SECRET is missing or using placeholder value")
        if self.cors_allow_origins.strip() == "*":
            warnings.append("CORS_ALLOW_ORIGINS='*' is permissive")
        return warnings


settings = Settings()
