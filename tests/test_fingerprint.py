from __future__ import annotations

import dataclasses
import struct

import pytest

from rewardgate.fingerprint import (
    Fingerprinter,
    device_fingerprint,
    fingerprint_for,
    rolling_hash,
    to_base36,
)
from rewardgate.signals import UNKNOWN, EnvironmentSignals


def _reference_hash(text: str) -> int:
    data = text.encode("utf-16-le")
    value = 0
    for code in struct.unpack(f"<{len(data) // 2}H", data):
        value = (value * 31 + code) % 2**32
    if value >= 2**31:
        value -= 2**32
    return abs(value)


@pytest.mark.parametrize("text, expected", [
    ("", 0),
    ("a", 97),
    ("ab", 3105),
])
def test_rolling_hash_small_inputs(text, expected):
    assert rolling_hash(text) == expected


@pytest.mark.parametrize("text", [
    "Mozilla/5.0 (X11; Linux x86_64)|en-US|1920x1080|24|-60|8|data:image/png;base64,AAAA",
    "emoji \U0001F600 and accents éü",
    "x" * 500,
])
def test_rolling_hash_wraps_to_32_bits(text):
    value = rolling_hash(text)

    assert 0 <= value <= 2**31
    assert value == _reference_hash(text)


@pytest.mark.parametrize("value, expected", [(0, "0"), (35, "z"), (36, "10"), (97, "2p"), (3105, "2e9")])
def test_to_base36(value, expected):
    assert to_base36(value) == expected


def test_to_base36_rejects_negative():
    with pytest.raises(ValueError):
        to_base36(-1)


def test_fingerprint_joins_components_with_pipes(human_signals):
    expected = fingerprint_for(human_signals.fingerprint_components())

    assert Fingerprinter(human_signals).fingerprint() == expected
    assert human_signals.fingerprint_components()[2] == "1920x1080"


def test_fingerprint_is_stable_within_a_process(human_signals):
    fingerprinter = Fingerprinter(human_signals)

    first = fingerprinter.fingerprint()
    second = fingerprinter.fingerprint()

    assert first == second
    assert first == Fingerprinter(EnvironmentSignals.from_payload({
        "user_agent": human_signals.user_agent,
        "language": "en-US",
        "screen_width": 1920,
        "screen_height": 1080,
        "color_depth": 24,
        "timezone_offset": -60,
        "hardware_concurrency": 8,
        "render_probe": human_signals.render_probe,
    })).fingerprint()


def test_fingerprint_ignores_non_identity_signals(human_signals):
    flagged = dataclasses.replace(human_signals, webdriver=True, engine_globals=frozenset())

    assert Fingerprinter(flagged).fingerprint() == Fingerprinter(human_signals).fingerprint()


def test_fingerprint_changes_with_identity_signals(human_signals):
    other = dataclasses.replace(human_signals, screen_width="1280")

    assert Fingerprinter(other).fingerprint() != Fingerprinter(human_signals).fingerprint()


def test_missing_signals_fall_back_to_unknown():
    signals = EnvironmentSignals.from_payload({})

    assert set(signals.fingerprint_components()) == {UNKNOWN, f"{UNKNOWN}x{UNKNOWN}"}
    assert Fingerprinter(signals).fingerprint() == fingerprint_for([UNKNOWN] * 2 + [f"{UNKNOWN}x{UNKNOWN}"] + [UNKNOWN] * 4)


def test_device_fingerprint_is_cached():
    assert device_fingerprint() == device_fingerprint()
    assert device_fingerprint() == Fingerprinter(EnvironmentSignals.local()).fingerprint()
