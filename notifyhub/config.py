"""Process configuration read from the environment (a .env file is loaded by the server)."""

import os
from dataclasses import dataclass

DEFAULT_POOL_SIZE = 8
DEFAULT_RETRY_BASE_MS = 200
DEFAULT_RETRY_FACTOR = 2.0
DEFAULT_RETRY_MAX_ATTEMPTS = 5
DEFAULT_RETRY_MAX_DELAY_MS = 20000
DEFAULT_PUBLISH_TIMEOUT_SEC = 30.0
DEFAULT_DEDUP_WINDOW = 100
DEFAULT_REGION = "us-east-1"
DEFAULT_ACCOUNT = "local"


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except (ValueError, TypeError):
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, default))
    except (ValueError, TypeError):
        return default


@dataclass(frozen=True)
class Settings:
    """Tunables for the delivery engine plus the transport adapter's region/account."""

    pool_size: int = DEFAULT_POOL_SIZE
    retry_base_ms: int = DEFAULT_RETRY_BASE_MS
    retry_factor: float = DEFAULT_RETRY_FACTOR
    retry_max_attempts: int = DEFAULT_RETRY_MAX_ATTEMPTS
    retry_max_delay_ms: int = DEFAULT_RETRY_MAX_DELAY_MS
    publish_timeout_sec: float = DEFAULT_PUBLISH_TIMEOUT_SEC
    dedup_window: int = DEFAULT_DEDUP_WINDOW
    region: str = DEFAULT_REGION
    account: str = DEFAULT_ACCOUNT

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from NOTIFY_* variables; unparsable values fall back to defaults."""
        return cls(
            pool_size=max(1, _env_int("NOTIFY_POOL_SIZE", DEFAULT_POOL_SIZE)),
            retry_base_ms=max(0, _env_int("NOTIFY_RETRY_BASE_MS", DEFAULT_RETRY_BASE_MS)),
            retry_factor=max(1.0, _env_float("NOTIFY_RETRY_FACTOR", DEFAULT_RETRY_FACTOR)),
            retry_max_attempts=max(1, _env_int("NOTIFY_RETRY_MAX_ATTEMPTS", DEFAULT_RETRY_MAX_ATTEMPTS)),
            retry_max_delay_ms=max(0, _env_int("NOTIFY_RETRY_MAX_DELAY_MS", DEFAULT_RETRY_MAX_DELAY_MS)),
            publish_timeout_sec=_env_float("NOTIFY_PUBLISH_TIMEOUT_SEC", DEFAULT_PUBLISH_TIMEOUT_SEC),
            dedup_window=max(1, _env_int("NOTIFY_DEDUP_WINDOW", DEFAULT_DEDUP_WINDOW)),
            region=(os.environ.get("NOTIFY_REGION") or DEFAULT_REGION).strip(),
            account=(os.environ.get("NOTIFY_ACCOUNT") or DEFAULT_ACCOUNT).strip(),
        )
