import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

SEVEN_DAYS = 7 * 24 * 60 * 60


def get_arena_data_path(ensure_exists: bool = False) -> Path:
    """Get arena-data path (defaults to ./arena-data, override with ARENA_DATA_DIR).

    Args:
        ensure_exists: If True, raises error if directory doesn't exist.
    """
    env_path = os.getenv("ARENA_DATA_DIR")
    if env_path:
        return Path(env_path)

    arena_data = Path.cwd() / "arena-data"

    if ensure_exists and not arena_data.exists():
        raise RuntimeError(
            f"arena-data not found at {arena_data}. "
            f"Please run from repo root or set ARENA_DATA_DIR environment variable."
        )

    return arena_data


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be a number, got {raw!r}") from exc


@dataclass
class ArenaSettings:
    """Runtime settings for the arena server."""

    owner_id: str = "arena-owner"
    oracle_id: Optional[str] = None
    confirmations: int = 3
    max_countdown_delay: int = SEVEN_DAYS
    lock_timeout: float = 30.0
    oracle_url: Optional[str] = None
    oracle_api_key: Optional[str] = None
    oracle_callback_url: Optional[str] = None
    local_oracle_delay: float = 0.0
    modifier_table_path: Optional[Path] = None
    event_log_enabled: bool = True

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> "ArenaSettings":
        """Build settings from ``SPIRAL_ARENA_*`` variables (and an optional .env file)."""
        if env_file is not None:
            load_dotenv(env_file, override=False)
        else:
            load_dotenv(override=False)

        table_path = os.getenv("SPIRAL_ARENA_MODIFIERS")
        settings = cls(
            owner_id=os.getenv("SPIRAL_ARENA_OWNER_ID", "arena-owner"),
            oracle_id=os.getenv("SPIRAL_ARENA_ORACLE_ID") or None,
            confirmations=_env_int("SPIRAL_ARENA_CONFIRMATIONS", 3),
            max_countdown_delay=_env_int("SPIRAL_ARENA_MAX_COUNTDOWN", SEVEN_DAYS),
            lock_timeout=_env_float("SPIRAL_ARENA_LOCK_TIMEOUT", 30.0),
            oracle_url=os.getenv("SPIRAL_ARENA_ORACLE_URL") or None,
            oracle_api_key=os.getenv("SPIRAL_ARENA_ORACLE_API_KEY") or None,
            oracle_callback_url=os.getenv("SPIRAL_ARENA_ORACLE_CALLBACK_URL") or None,
            local_oracle_delay=_env_float("SPIRAL_ARENA_LOCAL_ORACLE_DELAY", 0.0),
            modifier_table_path=Path(table_path) if table_path else None,
            event_log_enabled=os.getenv("SPIRAL_ARENA_EVENT_LOG", "1") not in ("0", "false", "no"),
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        if not self.owner_id:
            raise RuntimeError("SPIRAL_ARENA_OWNER_ID cannot be empty")
        if self.confirmations < 1:
            raise RuntimeError("SPIRAL_ARENA_CONFIRMATIONS must be at least 1")
        if not 0 <= self.max_countdown_delay <= SEVEN_DAYS:
            raise RuntimeError(
                f"SPIRAL_ARENA_MAX_COUNTDOWN must be within 0..{SEVEN_DAYS} seconds"
            )
        if self.lock_timeout <= 0:
            raise RuntimeError("SPIRAL_ARENA_LOCK_TIMEOUT must be positive")
