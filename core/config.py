"""Service configuration.

Settings are read from environment variables. A `.env` file at the repo root
is loaded first if it exists, so local development does not need exported
variables.

Variables:
- POSTING_DB_PATH: SQLite database file (default: ./posting.db)
- POSTING_MAX_ATTEMPTS: automatic attempts before an item needs an operator (3)
- POSTING_RETRY_BACKOFF_SECONDS: linear backoff unit between attempts (300)
- POSTING_SWEEP_INTERVAL_SECONDS: pause between dispatcher sweeps (60)
- POSTING_SWEEP_BATCH_SIZE: items loaded per sweep (50)
- POSTING_CLAIM_LEASE_SECONDS: PROCESSING items older than this are recovered (900)
- EXTERNAL_CALL_TIMEOUT_SECONDS: bound on each provider call (30)
- CREDENTIALS_ENCRYPTION_KEY: base64 32-byte key for stored credentials
- LOG_LEVEL / LOG_JSON: logging level name and JSON output toggle
- TEMPORAL_ENDPOINT / TEMPORAL_NAMESPACE / TEMPORAL_API_KEY / TEMPORAL_TASK_QUEUE
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from core.errors import ConfigurationError


REPO_ROOT = Path(__file__).resolve().parents[1]

_env_path = REPO_ROOT / ".env"
if _env_path.exists():
    load_dotenv(_env_path)


def _int_env(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")
    if value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {value}")
    return value


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")
    if value <= 0:
        raise ConfigurationError(f"{name} must be > 0, got {value}")
    return value


def _bool_env(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the posting service."""
    db_path: Path = REPO_ROOT / "posting.db"

    # Retry policy
    max_attempts: int = 3
    retry_backoff_seconds: int = 300

    # Dispatcher
    sweep_interval_seconds: int = 60
    sweep_batch_size: int = 50
    claim_lease_seconds: int = 900
    external_call_timeout_seconds: float = 30.0

    # Security
    credentials_encryption_key: Optional[str] = None

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    # Temporal
    temporal_endpoint: Optional[str] = None
    temporal_namespace: str = "default"
    temporal_api_key: Optional[str] = None
    temporal_task_queue: str = "posting-sync"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the current environment."""
        db_path = os.getenv("POSTING_DB_PATH")
        return cls(
            db_path=Path(db_path) if db_path else REPO_ROOT / "posting.db",
            max_attempts=_int_env("POSTING_MAX_ATTEMPTS", 3, minimum=1),
            retry_backoff_seconds=_int_env("POSTING_RETRY_BACKOFF_SECONDS", 300),
            sweep_interval_seconds=_int_env("POSTING_SWEEP_INTERVAL_SECONDS", 60, minimum=1),
            sweep_batch_size=_int_env("POSTING_SWEEP_BATCH_SIZE", 50, minimum=1),
            claim_lease_seconds=_int_env("POSTING_CLAIM_LEASE_SECONDS", 900, minimum=1),
            external_call_timeout_seconds=_float_env("EXTERNAL_CALL_TIMEOUT_SECONDS", 30.0),
            credentials_encryption_key=os.getenv("CREDENTIALS_ENCRYPTION_KEY") or None,
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_json=_bool_env("LOG_JSON"),
            temporal_endpoint=os.getenv("TEMPORAL_ENDPOINT") or None,
            temporal_namespace=os.getenv("TEMPORAL_NAMESPACE", "default"),
            temporal_api_key=os.getenv("TEMPORAL_API_KEY") or None,
            temporal_task_queue=os.getenv("TEMPORAL_TASK_QUEUE", "posting-sync"),
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the process-wide settings, reading the environment once."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reset_settings() -> None:
    """Forget cached settings (tests change the environment)."""
    global _settings
    _settings = None
