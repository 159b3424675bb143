"""Behavioral state tracked by the reward gate."""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional


Clock = Callable[[], int]

DEFAULT_RETENTION_MS = 5 * 60 * 1000
DEFAULT_HISTORY_CAP = 100


def default_clock() -> int:
    """Return the current wall-clock time in epoch milliseconds."""

    return int(time.time() * 1000)


@dataclass(frozen=True)
class ActionRecord:
    """A single approved action."""

    timestamp: int
    action_type: str

    def as_dict(self) -> Dict[str, object]:
        return {"timestamp": self.timestamp, "type": self.action_type}


@dataclass
class BehaviorState:
    """Chronological action log plus the active cooldown table."""

    action_log: List[ActionRecord] = field(default_factory=list)
    cooldowns: Dict[str, int] = field(default_factory=dict)

    def append(self, record: ActionRecord) -> None:
        self.action_log.append(record)

    def recent(self, now: int, window_ms: int) -> List[ActionRecord]:
        cutoff = now - window_ms
        return [record for record in self.action_log if record.timestamp > cutoff]

    def cooldown_expiry(self, action_type: str, now: int) -> Optional[int]:
        expires_at = self.cooldowns.get(action_type)
        if expires_at is None or now >= expires_at:
            return None
        return expires_at

    def prune(
        self,
        now: int,
        *,
        retention_ms: int = DEFAULT_RETENTION_MS,
        history_cap: int = DEFAULT_HISTORY_CAP,
    ) -> None:
        """Drop log entries outside the retention window or beyond the cap.

        Expired cooldowns are dropped at the same time.
        """

        cutoff = now - retention_ms
        kept = [record for record in self.action_log if record.timestamp > cutoff]
        self.action_log = kept[-history_cap:] if history_cap > 0 else []
        self.cooldowns = {
            action_type: expires_at
            for action_type, expires_at in self.cooldowns.items()
            if expires_at > now
        }

    def is_empty(self) -> bool:
        return not self.action_log and not self.cooldowns

    def copy(self) -> "BehaviorState":
        return BehaviorState(action_log=list(self.action_log), cooldowns=dict(self.cooldowns))

    def snapshot(self, *, history_cap: Optional[int] = None) -> Dict[str, object]:
        log = self.action_log if history_cap is None else self.action_log[-history_cap:]
        return {
            "cooldowns": dict(self.cooldowns),
            "actionLog": [record.as_dict() for record in log],
        }


__all__ = [
    "ActionRecord",
    "BehaviorState",
    "Clock",
    "DEFAULT_HISTORY_CAP",
    "DEFAULT_RETENTION_MS",
    "default_clock",
]
