from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from rewardgate.signals import EnvironmentSignals  # noqa: E402


class FakeClock:
    """Manually advanced millisecond clock.

    With a non-zero ``step`` every read moves time forward by ``step`` ms.
    """

    def __init__(self, start: int = 1_700_000_000_000, step: int = 0) -> None:
        self.now = start
        self.step = step

    def __call__(self) -> int:
        value = self.now
        self.now += self.step
        return value

    def advance(self, ms: int) -> None:
        self.now += ms


HUMAN_CHROME = {
    "userAgent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
    ),
    "language": "en-US",
    "screen": {"width": 1920, "height": 1080, "colorDepth": 24},
    "timezoneOffset": -60,
    "hardwareConcurrency": 8,
    "canvas": "data:image/png;base64,iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNk",
    "webdriver": False,
    "globals": ["chrome", "navigator", "document"],
}


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def human_signals() -> EnvironmentSignals:
    return EnvironmentSignals.from_payload(HUMAN_CHROME)


@pytest.fixture
def bot_signals() -> EnvironmentSignals:
    return EnvironmentSignals.from_payload(
        dict(HUMAN_CHROME, userAgent="Mozilla/5.0 (X11; Linux x86_64) HeadlessChrome/124.0")
    )
