"""
idbridge - Configuration and settings.

Settings are read from the environment and an optional .env file.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

# Turn window hard cap, regardless of configuration
MAX_EXCHANGES_HARD_CAP = 100


class CoreSettings(BaseSettings):
    """
    Settings for the translation layer.

    Everything has a default so the library works without a .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    idbridge_env: Literal["development", "staging", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Persistence
    idbridge_store_path: Path = Path(".idbridge/id_map.json")
    idbridge_persist_debounce_ms: int = 500

    # Conversation window (drives id reclamation)
    idbridge_max_chat_exchanges: int = MAX_EXCHANGES_HARD_CAP
    idbridge_chars_per_exchange: int = 500

    # JSONL event log
    # IDBRIDGE_EVENT_LOG=1 - write allocator lifecycle events to session_logs/
    idbridge_event_log: bool = False
    idbridge_event_log_dir: Path = Path("session_logs")

    @property
    def is_development(self) -> bool:
        return self.idbridge_env == "development"

    @property
    def is_production(self) -> bool:
        return self.idbridge_env == "production"

    @property
    def persist_debounce_seconds(self) -> float:
        return max(self.idbridge_persist_debounce_ms, 0) / 1000

    @property
    def max_chat_exchanges(self) -> int:
        """Configured window size clamped to [1, MAX_EXCHANGES_HARD_CAP]."""
        return min(max(self.idbridge_max_chat_exchanges, 1), MAX_EXCHANGES_HARD_CAP)


@lru_cache
def get_settings() -> CoreSettings:
    """Get cached settings instance."""
    return CoreSettings()


class _SettingsProxy:
    """Lazy proxy for settings to avoid loading .env at import time."""

    _instance: CoreSettings | None = None

    def __getattr__(self, name: str):
        if self._instance is None:
            self._instance = get_settings()
        return getattr(self._instance, name)


settings = _SettingsProxy()
