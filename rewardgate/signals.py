"""Environment signals consumed by the classifier and fingerprinter."""
from __future__ import annotations

import locale
import os
import platform
import sys
import time
from dataclasses import dataclass
from typing import FrozenSet, Iterable, Mapping, Optional

UNKNOWN = "unknown"


@dataclass(frozen=True)
class EnvironmentSignals:
    """Observable characteristics of the client environment.

    Every field has a safe fallback so that a partially reported environment
    still fingerprints and classifies deterministically.
    """

    user_agent: str = UNKNOWN
    language: str = UNKNOWN
    screen_width: str = UNKNOWN
    screen_height: str = UNKNOWN
    color_depth: str = UNKNOWN
    timezone_offset: str = UNKNOWN
    hardware_concurrency: str = UNKNOWN
    render_probe: str = UNKNOWN
    webdriver: bool = False
    engine_globals: Optional[FrozenSet[str]] = None

    def fingerprint_components(self) -> tuple[str, ...]:
        """Return the fixed signal tuple the fingerprint is derived from."""

        return (
            self.user_agent,
            self.language,
            f"{self.screen_width}x{self.screen_height}",
            self.color_depth,
            self.timezone_offset,
            self.hardware_concurrency,
            self.render_probe,
        )

    @classmethod
    def from_payload(cls, payload: Mapping[str, object]) -> "EnvironmentSignals":
        """Build signals from a client-reported mapping.

        Accepts both snake_case keys and the browser property names
        (``userAgent``, ``hardwareConcurrency`` ...).
        """

        screen = payload.get("screen")
        if not isinstance(screen, Mapping):
            screen = {}

        return cls(
            user_agent=_text(payload.get("user_agent"), payload.get("userAgent")),
            language=_text(payload.get("language")),
            screen_width=_text(payload.get("screen_width"), screen.get("width")),
            screen_height=_text(payload.get("screen_height"), screen.get("height")),
            color_depth=_text(payload.get("color_depth"), payload.get("colorDepth"), screen.get("colorDepth")),
            timezone_offset=_text(payload.get("timezone_offset"), payload.get("timezoneOffset")),
            hardware_concurrency=_text(
                payload.get("hardware_concurrency"),
                payload.get("hardwareConcurrency"),
            ),
            render_probe=_text(payload.get("render_probe"), payload.get("canvas")),
            webdriver=payload.get("webdriver") is True,
            engine_globals=_names(payload.get("engine_globals", payload.get("globals"))),
        )

    @classmethod
    def local(cls) -> "EnvironmentSignals":
        """Describe the running Python process."""

        implementation = platform.python_implementation()
        version = ".".join(str(part) for part in sys.version_info[:3])
        user_agent = f"{implementation}/{version} ({platform.system() or UNKNOWN}; {platform.machine() or UNKNOWN})"

        try:
            language = locale.getlocale()[0]
        except ValueError:
            language = None
        language = language or os.environ.get("LANG") or UNKNOWN
        offset_seconds = time.altzone if time.localtime().tm_isdst > 0 else time.timezone

        return cls(
            user_agent=user_agent,
            language=language,
            timezone_offset=str(offset_seconds // 60),
            hardware_concurrency=_text(os.cpu_count()),
        )


def _text(*values: object) -> str:
    for value in values:
        if value is None or isinstance(value, bool):
            continue
        text = str(value).strip()
        if text:
            return text
    return UNKNOWN


def _names(value: object) -> Optional[FrozenSet[str]]:
    if value is None:
        return None
    if isinstance(value, str):
        return frozenset(part.strip().lower() for part in value.split(",") if part.strip())
    if isinstance(value, Iterable):
        return frozenset(str(item).strip().lower() for item in value if str(item).strip())
    return None


__all__ = ["EnvironmentSignals", "UNKNOWN"]
