"""
Configuration module
"""
import os
from pathlib import Path
from typing import Literal
from pydantic import BaseModel, ConfigDict
from dotenv import load_dotenv

# Load .env from the working directory
load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Settings(BaseModel):
    """Application settings"""

    # Dependency fetching
    fetch_timeout_seconds: float = float(os.getenv("VN_FETCH_TIMEOUT_SECONDS", "30"))
    fetch_max_retries: int = int(os.getenv("VN_FETCH_MAX_RETRIES", "3"))
    fetch_backoff_base_seconds: float = float(os.getenv("VN_FETCH_BACKOFF_BASE_SECONDS", "1.0"))
    fetch_backoff_cap_seconds: float = float(os.getenv("VN_FETCH_BACKOFF_CAP_SECONDS", "5.0"))
    fetch_concurrency: int = int(os.getenv("VN_FETCH_CONCURRENCY", "4"))
    enable_fetch_cache: bool = _env_bool("VN_ENABLE_FETCH_CACHE", "true")
    user_agent: str = os.getenv("VN_USER_AGENT", "VN-Compiler/0.1")

    # {package} is "name" or "name@version"
    cdn_url_template: str = os.getenv(
        "VN_CDN_URL_TEMPLATE",
        "https://cdn.jsdelivr.net/npm/{package}",
    )

    # Templates
    template_path: str = os.getenv("VN_TEMPLATE_PATH", "")
    default_theme: str = os.getenv("VN_DEFAULT_THEME", "base")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = os.getenv("VN_LOG_LEVEL", "INFO").upper()

    # API / serve
    api_prefix: str = "/api"
    server_workdir: str = os.getenv("VN_SERVER_WORKDIR", ".")
    cors_origins: list = ["*"]
    cors_enabled: bool = _env_bool("VN_CORS_ENABLED", "false")

    model_config = ConfigDict(env_file=".env", case_sensitive=False)


# Global settings instance
settings = Settings()


def validate_config() -> bool:
    """
    Check the settings for obvious mistakes

    Returns:
        bool: whether the settings are usable
    """
    ok = True
    if settings.fetch_max_retries < 1:
        print(f"Warning: VN_FETCH_MAX_RETRIES must be >= 1 (got {settings.fetch_max_retries})")
        ok = False

    if settings.fetch_concurrency < 1:
        print(f"Warning: VN_FETCH_CONCURRENCY must be >= 1 (got {settings.fetch_concurrency})")
        ok = False

    if "{package}" not in settings.cdn_url_template:
        print(f"Warning: VN_CDN_URL_TEMPLATE has no {{package}} slot: {settings.cdn_url_template}")
        ok = False

    if settings.template_path and not Path(settings.template_path).exists():
        print(f"Warning: template file does not exist: {settings.template_path}")
        ok = False

    return ok
