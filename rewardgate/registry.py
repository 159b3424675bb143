"""Per-identity gates for processes serving many clients."""
from __future__ import annotations

import logging
from collections import OrderedDict
from threading import Lock
from typing import Mapping, Optional

from .fingerprint import Fingerprinter
from .gate import ActionGate
from .heuristics import AutomationClassifier
from .reputation import IPReputationClient
from .signals import EnvironmentSignals
from .state import Clock, default_clock
from .store import BehaviorStore, ErrorCallback, KeyValueBackend, backend_from_settings

logger = logging.getLogger(__name__)

DEFAULT_MAX_IDENTITIES = 10_000


class GateRegistry:
    """Hands out an :class:`ActionGate` per device fingerprint.

    Each identity keeps one store (and therefore one lock), persisted under
    ``<namespace>:<fingerprint>``, so concurrent requests for one identity
    cannot both pass a cooldown check. Gates themselves are built per call
    around the caller's signals, because the fingerprint does not cover the
    automation markers.

    At most ``max_identities`` stores stay in memory; the least recently used
    one is dropped first. Its history is already persisted and reloads on the
    next request for that identity.
    """

    def __init__(
        self,
        settings,
        *,
        backend: Optional[KeyValueBackend] = None,
        clock: Clock = default_clock,
        on_error: Optional[ErrorCallback] = None,
        max_identities: Optional[int] = None,
    ) -> None:
        if max_identities is None:
            max_identities = getattr(settings, "registry_max_identities", DEFAULT_MAX_IDENTITIES)
        if max_identities <= 0:
            raise ValueError("max_identities must be positive")
        self._settings = settings
        self._backend = backend if backend is not None else backend_from_settings(settings)
        self._clock = clock
        self._on_error = on_error
        self._max_identities = max_identities
        self._classifier = AutomationClassifier(bot_patterns=settings.bot_patterns)
        self._reputation = IPReputationClient.from_settings(settings)
        self._stores: "OrderedDict[str, BehaviorStore]" = OrderedDict()
        self._lock = Lock()

    def gate_for(self, signals: EnvironmentSignals) -> ActionGate:
        fingerprint = Fingerprinter(signals).fingerprint()
        return ActionGate(
            self._store_for(fingerprint),
            signals,
            classifier=self._classifier,
            reputation=self._reputation,
            max_actions_per_minute=self._settings.max_actions_per_minute,
            rate_window_ms=self._settings.rate_window_ms,
        )

    def gate_for_payload(self, payload: Mapping[str, object]) -> ActionGate:
        return self.gate_for(EnvironmentSignals.from_payload(payload))

    def forget(self, fingerprint: str) -> None:
        """Clear the history for ``fingerprint``, in memory and persisted."""

        with self._lock:
            store = self._stores.pop(fingerprint, None)
        if store is None:
            store = self._new_store(fingerprint, autoload=False)
        store.clear()

    def _store_for(self, fingerprint: str) -> BehaviorStore:
        with self._lock:
            store = self._stores.get(fingerprint)
            if store is not None:
                self._stores.move_to_end(fingerprint)
                return store
            store = self._new_store(fingerprint)
            self._stores[fingerprint] = store
            while len(self._stores) > self._max_identities:
                evicted, _ = self._stores.popitem(last=False)
                logger.debug("Evicting idle identity %s (cap=%d)", evicted, self._max_identities)
            return store

    def _new_store(self, fingerprint: str, *, autoload: bool = True) -> BehaviorStore:
        return BehaviorStore(
            self._backend,
            key=f"{self._settings.storage_namespace}:{fingerprint}",
            clock=self._clock,
            retention_ms=self._settings.retention_ms,
            history_cap=self._settings.history_cap,
            on_error=self._on_error,
            autoload=autoload,
        )

    def __len__(self) -> int:
        with self._lock:
            return len(self._stores)

    def __contains__(self, fingerprint: object) -> bool:
        with self._lock:
            return fingerprint in self._stores


__all__ = ["GateRegistry"]
