"""
Runtime configuration for the risk wizard service.

All values come from environment variables with sensible defaults so the service
starts without any configuration file.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional, Tuple

DEFAULT_MAX_IMPORT_BYTES = 5 * 1024 * 1024
DEFAULT_MAX_SESSIONS = 1000


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """Service settings."""
    log_level: str = "INFO"
    seed_on_startup: bool = True
    # None means the packaged techniques.json
    seed_path: Optional[str] = None
    allowed_origins: Tuple[str, ...] = field(default_factory=lambda: ("*",))
    max_import_bytes: int = DEFAULT_MAX_IMPORT_BYTES
    # oldest assessment is evicted past this many; 0 disables the cap
    max_sessions: int = DEFAULT_MAX_SESSIONS

    # PUBLIC_INTERFACE
    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from RISKWIZARD_* environment variables."""
        origins = os.getenv("RISKWIZARD_ALLOWED_ORIGINS", "*")
        return cls(
            log_level=os.getenv("RISKWIZARD_LOG_LEVEL", "INFO"),
            seed_on_startup=_env_bool("RISKWIZARD_SEED_ON_STARTUP", "true"),
            seed_path=os.getenv("RISKWIZARD_SEED_PATH") or None,
            allowed_origins=tuple(o.strip() for o in origins.split(",") if o.strip()) or ("*",),
            max_import_bytes=int(os.getenv("RISKWIZARD_MAX_IMPORT_BYTES", str(DEFAULT_MAX_IMPORT_BYTES))),
            max_sessions=int(os.getenv("RISKWIZARD_MAX_SESSIONS", str(DEFAULT_MAX_SESSIONS))),
        )
