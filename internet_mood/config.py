"""
Runtime configuration for the Internet Mood service.

Values come from environment variables, with a local ``.env`` file loaded
first so development setups work without exporting anything.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()

DEFAULT_FALLBACK_FILE = os.path.join("data", "moods.json")
DEFAULT_DAILY_LIMIT = 5
DEFAULT_STORE_TIMEOUT = 5.0


def _env(*names: str) -> str | None:
    """Return the first non-empty environment variable among *names*."""
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return None


@dataclass(frozen=True)
class Settings:
    """Service settings."""

    supabase_url: str | None = None
    supabase_key: str | None = None
    fallback_file: str = DEFAULT_FALLBACK_FILE
    daily_limit: int = DEFAULT_DAILY_LIMIT
    store_timeout: float = DEFAULT_STORE_TIMEOUT
    log_level: str = "INFO"

    @property
    def has_primary_store(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment."""
        return cls(
            supabase_url=_env("SUPABASE_URL", "NEXT_PUBLIC_SUPABASE_URL"),
            supabase_key=_env("SUPABASE_ANON_KEY", "NEXT_PUBLIC_SUPABASE_ANON_KEY"),
            fallback_file=_env("MOOD_FALLBACK_FILE") or DEFAULT_FALLBACK_FILE,
            daily_limit=int(_env("MOOD_DAILY_LIMIT") or DEFAULT_DAILY_LIMIT),
            store_timeout=float(_env("MOOD_STORE_TIMEOUT") or DEFAULT_STORE_TIMEOUT),
            log_level=(_env("MOOD_LOG_LEVEL") or "INFO").upper(),
        )
