"""Pydantic schemas for persisted state and external lookups."""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .state import ActionRecord, BehaviorState


class PersistedAction(BaseModel):
    """One entry of the persisted action log."""

    timestamp: int
    type: str = Field(min_length=1)


class PersistedState(BaseModel):
    """Serialized form of :class:`BehaviorState` kept in the key-value store."""

    cooldowns: Dict[str, int] = Field(default_factory=dict)
    action_log: List[PersistedAction] = Field(default_factory=list, alias="actionLog")

    model_config = ConfigDict(populate_by_name=True)

    def to_state(self) -> BehaviorState:
        return BehaviorState(
            action_log=[
                ActionRecord(timestamp=entry.timestamp, action_type=entry.type)
                for entry in self.action_log
            ],
            cooldowns=dict(self.cooldowns),
        )


class IPLookupPayload(BaseModel):
    """Subset of the IP geolocation response consumed by the reputation check."""

    ip: Optional[str] = None
    org: Optional[str] = Field(default=None, description="Organisation or ISP owning the address")
    country_code: Optional[str] = Field(default=None, description="ISO country code")

    model_config = ConfigDict(extra="ignore")


__all__ = ["IPLookupPayload", "PersistedAction", "PersistedState"]
