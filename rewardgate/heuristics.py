"""Heuristic detection of automated traffic."""
from __future__ import annotations

from typing import Iterable, Mapping, Optional, Sequence, Tuple

from .signals import EnvironmentSignals


DEFAULT_BOT_PATTERNS: Tuple[str, ...] = (
    "bot",
    "crawl",
    "spider",
    "headless",
    "phantom",
    "selenium",
    "puppeteer",
)


class AutomationClassifier:
    """Flags environments showing blunt automation markers.

    Rules are independent and OR-ed together; there is no scoring.
    """

    # user-agent token -> global object the genuine engine always exposes
    _ENGINE_GLOBALS: Mapping[str, str] = {"chrome": "chrome"}

    def __init__(self, *, bot_patterns: Optional[Sequence[str]] = None) -> None:
        patterns = DEFAULT_BOT_PATTERNS if bot_patterns is None else bot_patterns
        self._bot_patterns = tuple(pattern.lower() for pattern in patterns if pattern)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def looks_automated(self, signals: EnvironmentSignals) -> bool:
        return any(True for _ in self._triggers(signals))

    def triggers(self, signals: EnvironmentSignals) -> Tuple[str, ...]:
        """Return the names of every rule that fired, in evaluation order."""

        return tuple(self._triggers(signals))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _triggers(self, signals: EnvironmentSignals) -> Iterable[str]:
        user_agent = signals.user_agent.lower()

        if any(pattern in user_agent for pattern in self._bot_patterns):
            yield "user_agent_denylist"

        if signals.webdriver:
            yield "automation_flag"

        # Unreported globals are not evidence of a mismatch.
        if signals.engine_globals is not None:
            for token, global_name in self._ENGINE_GLOBALS.items():
                if token in user_agent and global_name not in signals.engine_globals:
                    yield "engine_mismatch"
                    break


__all__ = ["AutomationClassifier", "DEFAULT_BOT_PATTERNS"]
