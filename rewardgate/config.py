"""Configuration for the reward gate."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Dict, List, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from .heuristics import DEFAULT_BOT_PATTERNS
from .store import DEFAULT_NAMESPACE


load_dotenv()


class GateSettings(BaseSettings):
    """Environment-backed settings (``REWARDGATE_*``)."""

    max_actions_per_minute: int = Field(default=10, gt=0)
    rate_window_ms: int = Field(default=60_000, gt=0)
    retention_ms: int = Field(default=300_000, gt=0)
    history_cap: int = Field(default=100, gt=0)

    storage_namespace: str = Field(default=DEFAULT_NAMESPACE, min_length=1)
    data_directory: Optional[Path] = None
    storage_secret: Optional[str] = None

    reputation_url: str = "https://ipapi.co/json/"
    reputation_timeout: float = Field(default=4.0, gt=0)
    suspect_indicators: Annotated[List[str], NoDecode] = Field(default_factory=lambda: ["vpn", "proxy"])
    bot_patterns: Annotated[List[str], NoDecode] = Field(default_factory=lambda: list(DEFAULT_BOT_PATTERNS))

    # Identities whose history a GateRegistry keeps in memory at once.
    registry_max_identities: int = Field(default=10_000, gt=0)

    # Seconds between approvals of the same action type.
    cooldowns: Dict[str, int] = Field(
        default_factory=lambda: {
            "watch_ad": 60,
            "open_link": 300,
            "claim_daily": 86_400,
        }
    )

    model_config = SettingsConfigDict(
        env_prefix="REWARDGATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("suspect_indicators", "bot_patterns", mode="before")
    @classmethod
    def _split_terms(cls, value):
        if isinstance(value, str):
            for sep in (",", " ", "\n"):
                if sep in value:
                    parts = [part.strip() for part in value.replace("\n", sep).split(sep)]
                    return [part.lower() for part in parts if part]
            return [value.strip().lower()] if value.strip() else []
        return value

    @field_validator("data_directory", mode="before")
    @classmethod
    def _expand_path(cls, value):
        if value in (None, ""):
            return None
        if isinstance(value, (str, Path)):
            return Path(value).expanduser()
        raise ValueError("data_directory must be a filesystem path")

    @field_validator("cooldowns")
    @classmethod
    def _non_negative_cooldowns(cls, value: Dict[str, int]) -> Dict[str, int]:
        for action_type, seconds in value.items():
            if seconds < 0:
                raise ValueError(f"cooldown for {action_type!r} must not be negative")
        return value

    @model_validator(mode="after")
    def _check_windows(self) -> "GateSettings":
        if self.rate_window_ms >= self.retention_ms:
            raise ValueError("rate_window_ms must be shorter than retention_ms")
        if self.max_actions_per_minute > self.history_cap:
            raise ValueError("max_actions_per_minute must not exceed history_cap")
        return self

    def cooldown_for(self, action_type: str) -> Optional[int]:
        seconds = self.cooldowns.get(action_type)
        return seconds if seconds else None


@lru_cache()
def get_settings() -> GateSettings:
    """Return cached settings instance."""

    return GateSettings()


__all__ = ["GateSettings", "get_settings"]
