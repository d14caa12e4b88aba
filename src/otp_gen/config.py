"""OTP Gen — configuration loaded from environment."""

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, loaded from .env or environment variables."""

    # ── OTP store ─────────────────────────────────────────
    otp_expiry_ms: int = Field(default=30_000, gt=0)

    # ── HTTP API ──────────────────────────────────────────
    host: str = "127.0.0.1"
    port: int = 8000
    api_base_url: str = "http://localhost:8000/otp/v1"

    # ── Simulator ─────────────────────────────────────────
    # Talk to the HTTP API instead of an in-process store
    simulator_remote: bool = False

    # ── App ───────────────────────────────────────────────
    app_name: str = "OTP Gen"
    debug: bool = False

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton settings instance
settings = Settings()
