"""Runtime configuration for the todo store and claim scheduler."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


@dataclass(slots=True)
class StorageSettings:
    """SQLite storage settings."""

    busy_timeout_ms: int = 5_000


@dataclass(slots=True)
class SchedulerSettings:
    """Claim and listing defaults."""

    default_lease_minutes: int = 15
    default_limit: int = 20


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = Path(".sitback.db")
    storage: StorageSettings = field(default_factory=StorageSettings)
    scheduler: SchedulerSettings = field(default_factory=SchedulerSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local use."""

        return cls(
            db_path=db_path or Path(os.getenv("SITBACK_DB_PATH", ".sitback.db")),
            storage=StorageSettings(
                busy_timeout_ms=_env_int("SITBACK_BUSY_TIMEOUT_MS", 5_000),
            ),
            scheduler=SchedulerSettings(
                default_lease_minutes=_env_int("SITBACK_DEFAULT_LEASE_MINUTES", 15),
                default_limit=_env_int("SITBACK_DEFAULT_LIMIT", 20),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error for out-of-range values."""

        if self.storage.busy_timeout_ms <= 0:
            raise ValueError("SITBACK_BUSY_TIMEOUT_MS must be > 0.")
        if self.scheduler.default_lease_minutes <= 0:
            raise ValueError("SITBACK_DEFAULT_LEASE_MINUTES must be > 0.")
        if self.scheduler.default_limit <= 0:
            raise ValueError("SITBACK_DEFAULT_LIMIT must be > 0.")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {raw!r}") from error
