"""
Configuration loader for the aweme-sync service.
Reads environment variables (optionally from a local .env file) into a typed config object.
"""
import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv(dotenv_path=os.path.join(os.getcwd(), ".env"))


def get_env_var(key: str, default: Optional[str] = None) -> str:
    """Get environment variable with fallback to default"""
    return os.getenv(key, default)


def get_env_int(key: str, default: int = 0) -> int:
    """Get integer environment variable with fallback to default"""
    value = get_env_var(key, str(default))
    try:
        return int(value)
    except ValueError:
        return default


def get_env_float(key: str, default: float = 0.0) -> float:
    """Get float environment variable with fallback to default"""
    value = get_env_var(key, str(default))
    try:
        return float(value)
    except ValueError:
        return default


def get_env_bool(key: str, default: bool = False) -> bool:
    value = get_env_var(key)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def get_env_list(key: str) -> List[str]:
    """Split a newline or comma separated variable into trimmed, non-empty entries"""
    raw = get_env_var(key, "") or ""
    parts = raw.replace(",", "\n").split("\n")
    return [part.strip() for part in parts if part.strip()]


@dataclass
class AwemeSyncConfig:
    """Configuration for the aweme-sync service"""

    # Remote API
    API_BASE_URL: str = field(default_factory=lambda: get_env_var("API_BASE_URL", "https://www.ccai.fun"))
    API_USERNAME: str = field(default_factory=lambda: get_env_var("API_USERNAME", ""))
    API_PASSTOKEN: str = field(default_factory=lambda: get_env_var("API_PASSTOKEN", ""))
    HTTP_TIMEOUT_S: float = field(default_factory=lambda: get_env_float("HTTP_TIMEOUT_S", 120.0))
    HTTP_MAX_ATTEMPTS: int = field(default_factory=lambda: get_env_int("HTTP_MAX_ATTEMPTS", 3))
    HTTP_BACKOFF_BASE_S: float = field(default_factory=lambda: get_env_float("HTTP_BACKOFF_BASE_S", 2.0))

    # Data collection parameters
    PLATFORM: str = field(default_factory=lambda: get_env_var("PLATFORM", "douyin"))
    LINK_TYPE: str = field(default_factory=lambda: get_env_var("LINK_TYPE", "homepage"))
    UPDATE_METHOD: str = field(default_factory=lambda: get_env_var("UPDATE_METHOD", "update"))
    # 1 fetches the latest page only, 99 walks the whole feed
    PAGE_TURNS: int = field(default_factory=lambda: get_env_int("PAGE_TURNS", 1))
    INPUT_URLS: List[str] = field(default_factory=lambda: get_env_list("INPUT_URLS"))

    # Destination datastore
    DATASTORE_BACKEND: str = field(default_factory=lambda: get_env_var("DATASTORE_BACKEND", "memory"))
    WRITE_CHUNK_SIZE: int = field(default_factory=lambda: get_env_int("WRITE_CHUNK_SIZE", 500))
    SCAN_PAGE_SIZE: int = field(default_factory=lambda: get_env_int("SCAN_PAGE_SIZE", 5000))

    # Transcript pipeline
    MAX_CONCURRENT_REQUESTS: int = field(default_factory=lambda: get_env_int("MAX_CONCURRENT_REQUESTS", 5))
    ASR_POLL_INTERVAL_S: float = field(default_factory=lambda: get_env_float("ASR_POLL_INTERVAL_S", 10.0))
    ASR_MAX_POLL_ATTEMPTS: int = field(default_factory=lambda: get_env_int("ASR_MAX_POLL_ATTEMPTS", 60))
    LLM_POLL_INTERVAL_S: float = field(default_factory=lambda: get_env_float("LLM_POLL_INTERVAL_S", 5.0))
    LLM_MAX_POLL_ATTEMPTS: int = field(default_factory=lambda: get_env_int("LLM_MAX_POLL_ATTEMPTS", 60))

    # Subscription
    SUBSCRIPTION_INTERVAL_HOURS: float = field(default_factory=lambda: get_env_float("SUBSCRIPTION_INTERVAL_HOURS", 12))
    CANCEL_POLL_INTERVAL_S: float = field(default_factory=lambda: get_env_float("CANCEL_POLL_INTERVAL_S", 5.0))
    WEBHOOK_URL: str = field(default_factory=lambda: get_env_var("WEBHOOK_URL", ""))
    TEMPLATE_ID: str = field(default_factory=lambda: get_env_var("TEMPLATE_ID", "AAqReM3nWGMWd"))
    TEMPLATE_VERSION: str = field(default_factory=lambda: get_env_var("TEMPLATE_VERSION", "1.0.2"))
    DISPLAY_TIMEZONE: str = field(default_factory=lambda: get_env_var("DISPLAY_TIMEZONE", "Asia/Shanghai"))

    # Logging
    LOG_LEVEL: str = field(default_factory=lambda: get_env_var("LOG_LEVEL", "INFO"))
    LOG_FORMAT: Optional[str] = field(default_factory=lambda: get_env_var("LOG_FORMAT") or None)


config = AwemeSyncConfig()
