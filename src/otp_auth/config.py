"""OTP Auth Service — configuration loaded from environment."""

from __future__ import annotations

from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings

DEFAULT_HMAC_SECRET = "change-me-in-production"

DEFAULT_SMS_TEMPLATE = (
    "Your OTP code is: {otp}. This code will expire in {expiry_minutes} minutes. "
    "Do not share this code with anyone."
)


class Settings(BaseSettings):
    """Application-wide settings, loaded from .env or environment variables."""

    # ── App ───────────────────────────────────────────────
    app_name: str = "OTP Auth Service"
    environment: Literal["development", "test", "production"] = "development"
    debug: bool = False

    # ── Token store ───────────────────────────────────────
    token_store_backend: Literal["redis", "memory"] = "redis"
    redis_url: str = "redis://localhost:6379/0"
    redis_socket_timeout_seconds: float = 5.0

    # ── Local customer directory ──────────────────────────
    database_url: str = "sqlite+aiosqlite:///./otp_auth.db"

    # ── OTP ───────────────────────────────────────────────
    hmac_secret: str = DEFAULT_HMAC_SECRET
    otp_length: int = 6
    otp_expiry_minutes: int = 10
    otp_time_window_minutes: int = 5
    otp_resend_wait_minutes: int = 2
    expose_otp_in_response: bool = False
    otp_sms_template: str = DEFAULT_SMS_TEMPLATE

    # ── Login links ───────────────────────────────────────
    login_link_expiry_minutes: int = 15
    frontend_url: str = "http://localhost:3000"
    login_email_subject: str = "Your login link"

    # ── SMS delivery ──────────────────────────────────────
    sms_provider: Literal["log", "ssl_wireless"] = "log"
    sms_api_base_url: str = "https://smsplus.sslwireless.com/api/v3/send-sms"
    sms_api_token: str = ""
    sms_sid: str = ""
    sms_csms_prefix: str = "OTP_"

    # ── Email delivery ────────────────────────────────────
    email_provider: Literal["log", "smtp"] = "log"
    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_start_tls: bool = True
    email_from: str = "no-reply@example.com"
    email_from_name: str = "OTP Auth Service"

    notifier_timeout_seconds: float = 30.0

    # ── Customer directory ────────────────────────────────
    directory_backend: Literal["database", "http"] = "database"
    directory_api_base_url: str = "http://localhost:8080/api/v1"
    directory_api_token: str = ""
    directory_timeout_seconds: float = 10.0
    customer_snapshot_ttl_seconds: int | None = None

    # ── Rate limiting ─────────────────────────────────────
    rate_limit_enabled: bool = True
    otp_send_limit: int = 3
    otp_send_window_seconds: int = 15 * 60
    otp_verify_limit: int = 5
    otp_verify_window_seconds: int = 10 * 60
    otp_resend_limit: int = 3
    otp_resend_window_seconds: int = 2 * 60
    signup_limit: int = 5
    signup_window_seconds: int = 60 * 60
    login_link_limit: int = 5
    login_link_window_seconds: int = 15 * 60
    general_limit: int = 100
    general_window_seconds: int = 15 * 60

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @model_validator(mode="after")
    def _check_environment_gates(self) -> Settings:
        if self.expose_otp_in_response and self.environment != "development":
            raise ValueError(
                "expose_otp_in_response is only allowed in the development environment"
            )
        if self.environment == "production" and self.hmac_secret == DEFAULT_HMAC_SECRET:
            raise ValueError("hmac_secret must be set in production")
        if self.otp_length < 4 or self.otp_length > 10:
            raise ValueError("otp_length must be between 4 and 10")
        return self

    # ── Derived durations ─────────────────────────────────

    @property
    def otp_expiry_seconds(self) -> int:
        return self.otp_expiry_minutes * 60

    @property
    def otp_time_window_ms(self) -> int:
        return self.otp_time_window_minutes * 60 * 1000

    @property
    def otp_resend_wait_seconds(self) -> int:
        return self.otp_resend_wait_minutes * 60

    @property
    def login_link_expiry_seconds(self) -> int:
        return self.login_link_expiry_minutes * 60


# Singleton settings instance
settings = Settings()
