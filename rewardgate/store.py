"""Durable, bounded behavior history for the reward gate."""

from __future__ import annotations

import base64
import hashlib
import json
import logging
import re
from pathlib import Path
from threading import RLock
from typing import Callable, Dict, List, Optional, Protocol

from cryptography.fernet import Fernet, InvalidToken
from pydantic import ValidationError

from .models import PersistedState
from .state import (
    DEFAULT_HISTORY_CAP,
    DEFAULT_RETENTION_MS,
    ActionRecord,
    BehaviorState,
    Clock,
    default_clock,
)

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "tf-fraud-state"

ErrorCallback = Callable[[str, BaseException], None]

_PERSISTENCE_ERRORS = (OSError, ValueError, TypeError, ValidationError, InvalidToken)


class KeyValueBackend(Protocol):
    """Minimal durable key-value interface used by :class:`BehaviorStore`."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class InMemoryBackend:
    """Process-local backend, mainly for tests and ephemeral sessions."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data)


def _derive_fernet_key(secret: str) -> bytes:
    """Return a valid Fernet key from an arbitrary secret string."""

    if not secret:
        raise ValueError("storage secret must not be empty")

    try:
        decoded = base64.urlsafe_b64decode(secret)
        if len(decoded) == 32:
            return base64.urlsafe_b64encode(decoded)
    except ValueError:
        pass

    digest = hashlib.sha256(secret.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest)


class FileBackend:
    """Stores each key as a file under ``directory``, optionally Fernet-encrypted."""

    def __init__(self, directory: Path, *, secret: Optional[str] = None) -> None:
        self._directory = Path(directory)
        self._fernet = Fernet(_derive_fernet_key(secret)) if secret else None

    def path_for(self, key: str) -> Path:
        safe = re.sub(r"[^A-Za-z0-9_.-]", "_", key)
        suffix = ".json.enc" if self._fernet else ".json"
        return self._directory / f"{safe}{suffix}"

    def get(self, key: str) -> Optional[str]:
        path = self.path_for(key)
        if not path.exists():
            return None
        payload = path.read_bytes()
        if self._fernet is not None:
            payload = self._fernet.decrypt(payload)
        return payload.decode("utf-8")

    def set(self, key: str, value: str) -> None:
        payload = value.encode("utf-8")
        if self._fernet is not None:
            payload = self._fernet.encrypt(payload)
        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(payload)

    def delete(self, key: str) -> None:
        self.path_for(key).unlink(missing_ok=True)


def backend_from_settings(settings) -> KeyValueBackend:
    """File backend under ``settings.data_directory``, or in-memory when unset."""

    directory = getattr(settings, "data_directory", None)
    if directory is None:
        return InMemoryBackend()
    return FileBackend(directory, secret=getattr(settings, "storage_secret", None))


class BehaviorStore:
    """Bounded action log and cooldown table persisted under a single key.

    Persistence is best effort: read and write faults are logged and passed
    to ``on_error`` but never raised, so a broken backend degrades to an
    in-memory history instead of blocking rewards.
    """

    def __init__(
        self,
        backend: Optional[KeyValueBackend] = None,
        *,
        key: str = DEFAULT_NAMESPACE,
        clock: Clock = default_clock,
        retention_ms: int = DEFAULT_RETENTION_MS,
        history_cap: int = DEFAULT_HISTORY_CAP,
        on_error: Optional[ErrorCallback] = None,
        autoload: bool = True,
    ) -> None:
        self._backend: KeyValueBackend = backend if backend is not None else InMemoryBackend()
        self._key = key
        self._clock = clock
        self._retention_ms = retention_ms
        self._history_cap = history_cap
        self._on_error = on_error
        self._lock = RLock()
        self._state = BehaviorState()
        if autoload:
            self.load()

    @property
    def key(self) -> str:
        return self._key

    @property
    def lock(self) -> RLock:
        return self._lock

    @property
    def state(self) -> BehaviorState:
        """A copy of the current in-memory state."""

        with self._lock:
            return self._state.copy()

    # ------------------------------------------------------------------
    # Persistence
    def load(self) -> BehaviorState:
        with self._lock:
            state = BehaviorState()
            try:
                raw = self._backend.get(self._key)
                if raw is not None:
                    state = PersistedState.model_validate_json(raw).to_state()
            except _PERSISTENCE_ERRORS as exc:
                self._report("load", exc)
                state = BehaviorState()
            except Exception as exc:
                self._report("load", exc, unexpected=True)
                state = BehaviorState()
            self._state = state
            return state.copy()

    def save(self, state: Optional[BehaviorState] = None) -> None:
        with self._lock:
            if state is not None:
                self._state = state.copy()
            try:
                payload = json.dumps(
                    self._state.snapshot(history_cap=self._history_cap),
                    separators=(",", ":"),
                )
                self._backend.set(self._key, payload)
            except _PERSISTENCE_ERRORS as exc:
                self._report("save", exc)
            except Exception as exc:
                self._report("save", exc, unexpected=True)

    def clear(self) -> None:
        with self._lock:
            self._state = BehaviorState()
            try:
                self._backend.delete(self._key)
            except _PERSISTENCE_ERRORS as exc:
                self._report("clear", exc)
            except Exception as exc:
                self._report("clear", exc, unexpected=True)

    # ------------------------------------------------------------------
    # Queries
    def now(self) -> int:
        return self._clock()

    def recent_actions(self, window_ms: int, *, now: Optional[int] = None) -> List[ActionRecord]:
        with self._lock:
            return self._state.recent(self._clock() if now is None else now, window_ms)

    def cooldown_expiry(self, action_type: str, *, now: Optional[int] = None) -> Optional[int]:
        with self._lock:
            return self._state.cooldown_expiry(action_type, self._clock() if now is None else now)

    def __len__(self) -> int:
        with self._lock:
            return len(self._state.action_log)

    # ------------------------------------------------------------------
    # Mutations
    def record_action(self, action_type: str, *, now: Optional[int] = None) -> ActionRecord:
        if not action_type:
            raise ValueError("action_type must be a non-empty string")
        with self._lock:
            if now is None:
                now = self._clock()
            record = ActionRecord(timestamp=now, action_type=action_type)
            self._state.append(record)
            self._state.prune(
                now,
                retention_ms=self._retention_ms,
                history_cap=self._history_cap,
            )
            return record

    def arm_cooldown(self, action_type: str, seconds: float, *, now: Optional[int] = None) -> int:
        if not action_type:
            raise ValueError("action_type must be a non-empty string")
        if seconds < 0:
            raise ValueError("cooldown seconds must not be negative")
        with self._lock:
            expires_at = (self._clock() if now is None else now) + int(seconds * 1000)
            self._state.cooldowns[action_type] = expires_at
            return expires_at

    # ------------------------------------------------------------------
    def _report(self, operation: str, exc: BaseException, *, unexpected: bool = False) -> None:
        if unexpected:
            logger.exception("Unexpected error during behavior store %s for %s", operation, self._key)
        else:
            logger.warning("Behavior store %s failed for %s: %s", operation, self._key, exc)
        if self._on_error is None:
            return
        try:
            self._on_error(operation, exc)
        except Exception:
            logger.exception("Behavior store error callback raised")


__all__ = [
    "BehaviorStore",
    "DEFAULT_NAMESPACE",
    "FileBackend",
    "InMemoryBackend",
    "KeyValueBackend",
    "backend_from_settings",
]
