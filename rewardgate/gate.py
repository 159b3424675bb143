"""Reward action gate orchestration."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .fingerprint import Fingerprinter
from .heuristics import AutomationClassifier
from .reputation import IPReputationClient, IPReputationResult
from .signals import EnvironmentSignals
from .state import Clock, default_clock
from .store import BehaviorStore, ErrorCallback, KeyValueBackend, backend_from_settings

logger = logging.getLogger(__name__)


class DenyReason(str, Enum):
    BOT_SUSPECTED = "bot-suspected"
    RATE_LIMITED = "rate-limited"
    ON_COOLDOWN = "on-cooldown"


@dataclass(frozen=True)
class GateDecision:
    """Result of :meth:`ActionGate.evaluate`."""

    allowed: bool
    reason: Optional[DenyReason] = None
    message: Optional[str] = None
    retry_after: int = 0

    @classmethod
    def allow(cls) -> "GateDecision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: DenyReason, *, retry_after: int = 0) -> "GateDecision":
        if reason is DenyReason.BOT_SUSPECTED:
            message = "Automated browsers are not allowed."
        elif reason is DenyReason.RATE_LIMITED:
            message = "Too many actions. Please wait a moment."
        else:
            message = f"Please wait {retry_after} seconds before trying again."
        return cls(allowed=False, reason=reason, message=message, retry_after=retry_after)

    def as_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {"allowed": self.allowed}
        if self.reason is not None:
            payload["reason"] = self.reason.value
            payload["message"] = self.message
        if self.retry_after:
            payload["retry_after"] = self.retry_after
        return payload


class ActionGate:
    """Decides whether a reward action may proceed.

    Checks run in a fixed order (automation, rate limit, cooldown) and the
    first failing check wins. Denials never touch the store; only an
    approval records the action, arms the optional cooldown and persists.
    """

    def __init__(
        self,
        store: BehaviorStore,
        signals: EnvironmentSignals,
        *,
        classifier: Optional[AutomationClassifier] = None,
        reputation: Optional[IPReputationClient] = None,
        max_actions_per_minute: int = 10,
        rate_window_ms: int = 60_000,
    ) -> None:
        if max_actions_per_minute <= 0:
            raise ValueError("max_actions_per_minute must be positive")
        self.store = store
        self.signals = signals
        self.classifier = classifier or AutomationClassifier()
        self.reputation = reputation or IPReputationClient()
        self.fingerprinter = Fingerprinter(signals)
        self._max_actions = max_actions_per_minute
        self._rate_window_ms = rate_window_ms

    @classmethod
    def from_settings(
        cls,
        settings,
        signals: EnvironmentSignals,
        *,
        backend: Optional[KeyValueBackend] = None,
        store_key: Optional[str] = None,
        clock: Clock = default_clock,
        on_error: Optional[ErrorCallback] = None,
    ) -> "ActionGate":
        store = BehaviorStore(
            backend if backend is not None else backend_from_settings(settings),
            key=store_key or settings.storage_namespace,
            clock=clock,
            retention_ms=settings.retention_ms,
            history_cap=settings.history_cap,
            on_error=on_error,
        )
        return cls(
            store,
            signals,
            classifier=AutomationClassifier(bot_patterns=settings.bot_patterns),
            reputation=IPReputationClient.from_settings(settings),
            max_actions_per_minute=settings.max_actions_per_minute,
            rate_window_ms=settings.rate_window_ms,
        )

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------
    def evaluate(
        self,
        action_type: str,
        cooldown_seconds: Optional[float] = None,
        *,
        signals: Optional[EnvironmentSignals] = None,
    ) -> GateDecision:
        """Run the checks for one action attempt.

        ``signals`` overrides the signals the gate was built with, for callers
        that classify each request separately. An approval saves to the
        backend before returning, so a slow backend adds to the latency of
        approved calls (denials never write).
        """

        if not action_type:
            raise ValueError("action_type must be a non-empty string")
        if cooldown_seconds is not None and cooldown_seconds < 0:
            raise ValueError("cooldown_seconds must not be negative")

        triggers = self.classifier.triggers(signals if signals is not None else self.signals)
        if triggers:
            logger.debug("Denied %s: automation markers %s", action_type, ", ".join(triggers))
            return GateDecision.deny(DenyReason.BOT_SUSPECTED)

        # Check-then-record must not interleave with another evaluate.
        with self.store.lock:
            now = self.store.now()
            recent = self.store.recent_actions(self._rate_window_ms, now=now)
            if len(recent) >= self._max_actions:
                logger.debug("Denied %s: %d actions in the last %dms", action_type, len(recent), self._rate_window_ms)
                return GateDecision.deny(DenyReason.RATE_LIMITED)

            expires_at = self.store.cooldown_expiry(action_type, now=now)
            if expires_at is not None:
                remaining = _seconds_until(expires_at, now)
                logger.debug("Denied %s: on cooldown for %ds", action_type, remaining)
                return GateDecision.deny(DenyReason.ON_COOLDOWN, retry_after=remaining)

            self.store.record_action(action_type, now=now)
            if cooldown_seconds:
                self.store.arm_cooldown(action_type, cooldown_seconds, now=now)
            self.store.save()

        logger.debug("Approved %s for %s", action_type, self.fingerprint())
        return GateDecision.allow()

    def is_on_cooldown(self, action_type: str) -> bool:
        return self.store.cooldown_expiry(action_type) is not None

    def cooldown_remaining(self, action_type: str) -> int:
        """Whole seconds until the cooldown for ``action_type`` expires, rounded up."""

        now = self.store.now()
        expires_at = self.store.cooldown_expiry(action_type, now=now)
        if expires_at is None:
            return 0
        return _seconds_until(expires_at, now)

    # ------------------------------------------------------------------
    # Identity and session
    # ------------------------------------------------------------------
    def fingerprint(self) -> str:
        return self.fingerprinter.fingerprint()

    def clear(self) -> None:
        """Forget all history, e.g. on logout."""

        self.store.clear()

    async def check_ip_reputation(self, ip: Optional[str] = None) -> IPReputationResult:
        """Advisory lookup; it never participates in :meth:`evaluate`."""

        return await self.reputation.check(ip)


def _seconds_until(expires_at: int, now: int) -> int:
    return max(1, math.ceil((expires_at - now) / 1000))


__all__ = ["ActionGate", "DenyReason", "GateDecision"]
