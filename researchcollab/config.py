# researchcollab/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Literal


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_env: Literal["dev", "staging", "prod"] = "dev"
    log_level: str = "INFO"
    public_base_url: str = "http://localhost:3000"  # Frontend origin used in links (emails, Discord embeds)

    # Database
    expected_schema_version: str = "001_init.sql"  # Update on deploy when new migrations are added
    database_url: str | None = None
    pghost: str = "localhost"
    pgport: int = 5432
    pguser: str = "postgres"
    pgpassword: str = ""
    pgdatabase: str = "postgres"
    pg_pool_min: int = 2
    pg_pool_max: int = 10
    pg_connect_timeout: int = 5
    pg_command_timeout: float = 30.0

    # Sessions (issued after Discord OAuth)
    session_secret: str | None = None
    session_ttl_seconds: int = 604800  # 7 days
    session_cookie_name: str = "rc_session"
    oauth_state_cookie_name: str = "rc_oauth_state"

    # Security
    allowed_origins: list[str] = ["*"]
    metrics_token: str | None = None  # Optional token for /metrics (open when unset)

    # Discord OAuth (sign-in)
    discord_client_id: str | None = None
    discord_client_secret: str | None = None
    discord_redirect_uri: str | None = None  # e.g., https://api.example.com/auth/discord/callback

    # Discord channel announcements for new research calls
    discord_bot_token: str | None = None
    discord_channel_id: str | None = None
    discord_api_base: str = "https://discord.com/api/v10"

    # Notifications
    notifications_enabled: bool = True  # Master switch for email + Discord announcements
    # "smtp" - deliver through the SMTP relay below
    # "log"  - write the rendered email to the log (development)
    email_backend: Literal["smtp", "log"] = "log"
    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_user: str | None = None
    smtp_password: str | None = None
    smtp_use_tls: bool = True
    smtp_timeout_seconds: int = 10
    email_from: str = "noreply@researchcollab.app"

    # Outbound HTTP
    http_timeout_seconds: float = 10.0

    # Feature Flags
    enable_metrics: bool = True
    enable_request_logging: bool = True

    @property
    def is_production(self) -> bool:
        return self.app_env == "prod"

    @property
    def is_staging(self) -> bool:
        return self.app_env == "staging"

    @property
    def database_dsn(self) -> str:
        if self.database_url:
            return self.database_url

        return (
            f"postgresql://{self.pguser}:{self.pgpassword}"
            f"@{self.pghost}:{self.pgport}/{self.pgdatabase}"
        )

    @property
    def discord_oauth_enabled(self) -> bool:
        """Check if Discord sign-in is configured"""
        return bool(
            self.discord_client_id
            and self.discord_client_secret
            and self.discord_redirect_uri
        )

    @property
    def discord_announcements_enabled(self) -> bool:
        """Check if the Discord announcement channel is configured"""
        return bool(self.discord_bot_token and self.discord_channel_id)

    @property
    def smtp_enabled(self) -> bool:
        """Check if the SMTP relay is configured"""
        return bool(self.smtp_host)

    def validate_required_for_production(self) -> list[str]:
        """Validate that required settings exist for production"""
        if not self.is_production:
            return []

        missing = []

        required_fields = [
            ("session_secret", self.session_secret),
            ("discord_client_id", self.discord_client_id),
            ("discord_client_secret", self.discord_client_secret),
            ("discord_redirect_uri", self.discord_redirect_uri),
        ]

        if self.notifications_enabled and self.email_backend == "smtp":
            required_fields.append(("smtp_host", self.smtp_host))

        for field_name, value in required_fields:
            if not value:
                missing.append(field_name)

        return missing


def warn_on_risky_config(s: "Settings") -> list[str]:
    warnings: list[str] = []

    # --- Sessions / Security ---
    if not s.session_secret:
        warnings.append("session_secret is not set: an ephemeral secret is used and sessions will not survive restarts.")

    if s.is_production and s.allowed_origins == ["*"]:
        warnings.append("prod: allowed_origins=['*'] (CORS is wide open).")

    if s.enable_metrics and not s.metrics_token:
        warnings.append("enable_metrics=True but metrics_token is not set: /metrics is publicly readable.")

    # --- Discord ---
    if not s.discord_oauth_enabled:
        warnings.append("Discord OAuth is not configured (sign-in will return a configuration error).")

    if bool(s.discord_bot_token) != bool(s.discord_channel_id):
        warnings.append("discord_bot_token and discord_channel_id must be set together (announcements disabled).")

    # --- Email ---
    if s.notifications_enabled and s.email_backend == "smtp" and not s.smtp_host:
        warnings.append("email_backend=smtp but smtp_host is missing (emails will fail).")

    if s.is_production and s.email_backend == "log":
        warnings.append("prod: email_backend=log (emails are written to the log, not delivered).")

    return warnings


def validate_or_warn(s: "Settings") -> None:
    """
    In prod: enforce required settings (hard fail).
    In non-prod: warn only.
    """
    missing = s.validate_required_for_production()

    if missing:
        raise RuntimeError(f"Missing required settings for production: {', '.join(missing)}")

    for msg in warn_on_risky_config(s):
        print(f"[WARN][config] {msg}")


settings = Settings()
validate_or_warn(settings)
