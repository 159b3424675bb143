"""Device fingerprinting for the reward gate."""
from __future__ import annotations

from functools import lru_cache
from typing import Iterable, Iterator, Optional

from .signals import EnvironmentSignals

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"
_SEPARATOR = "|"


def rolling_hash(text: str) -> int:
    """Return the absolute value of the 32-bit ``h = h * 31 + c`` hash of ``text``.

    Characters are consumed as UTF-16 code units so the result matches the
    value browser clients compute for the same string.
    """

    value = 0
    for code in _utf16_units(text):
        value = (value * 31 + code) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return abs(value)


def to_base36(value: int) -> str:
    if value < 0:
        raise ValueError("value must be non-negative")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def fingerprint_for(components: Iterable[str]) -> str:
    return to_base36(rolling_hash(_SEPARATOR.join(components)))


class Fingerprinter:
    """Derives and memoizes the pseudo-identifier for one environment."""

    def __init__(self, signals: EnvironmentSignals) -> None:
        self._signals = signals
        self._cached: Optional[str] = None

    @property
    def signals(self) -> EnvironmentSignals:
        return self._signals

    def fingerprint(self) -> str:
        if self._cached is None:
            self._cached = fingerprint_for(self._signals.fingerprint_components())
        return self._cached


@lru_cache()
def device_fingerprint() -> str:
    """Fingerprint of the running process, computed once."""

    return Fingerprinter(EnvironmentSignals.local()).fingerprint()


def _utf16_units(text: str) -> Iterator[int]:
    for char in text:
        code = ord(char)
        if code > 0xFFFF:
            code -= 0x10000
            yield 0xD800 + (code >> 10)
            yield 0xDC00 + (code & 0x3FF)
        else:
            yield code


__all__ = [
    "Fingerprinter",
    "device_fingerprint",
    "fingerprint_for",
    "rolling_hash",
    "to_base36",
]
