from __future__ import annotations

import dataclasses
import threading

import pytest

from rewardgate.config import GateSettings
from rewardgate.gate import DenyReason
from rewardgate.registry import GateRegistry
from rewardgate.store import InMemoryBackend

from conftest import HUMAN_CHROME


def _variant(signals, width):
    return dataclasses.replace(signals, screen_width=str(width))


def test_same_identity_shares_a_store(human_signals, clock):
    registry = GateRegistry(GateSettings(), backend=InMemoryBackend(), clock=clock)

    first = registry.gate_for(human_signals)
    second = registry.gate_for_payload(HUMAN_CHROME)

    assert first.store is second.store
    assert first.fingerprint() == second.fingerprint()
    assert len(registry) == 1
    assert first.fingerprint() in registry


def test_identities_are_isolated(human_signals, clock):
    backend = InMemoryBackend()
    registry = GateRegistry(GateSettings(), backend=backend, clock=clock)
    other_signals = dataclasses.replace(human_signals, screen_width="2560", screen_height="1440")

    gate_a = registry.gate_for(human_signals)
    gate_b = registry.gate_for(other_signals)

    assert gate_a.evaluate("watch_ad", 60).allowed
    assert gate_a.evaluate("watch_ad", 60).reason is DenyReason.ON_COOLDOWN
    assert gate_b.evaluate("watch_ad", 60).allowed
    assert sorted(backend.keys()) == sorted(
        f"tf-fraud-state:{gate.fingerprint()}" for gate in (gate_a, gate_b)
    )


def test_automation_markers_checked_on_every_request(human_signals, clock):
    registry = GateRegistry(GateSettings(), backend=InMemoryBackend(), clock=clock)
    flagged = dataclasses.replace(human_signals, webdriver=True)

    assert registry.gate_for(human_signals).evaluate("watch_ad").allowed
    flagged_gate = registry.gate_for(flagged)

    assert flagged_gate.fingerprint() == registry.gate_for(human_signals).fingerprint()
    assert flagged_gate.evaluate("open_link").reason is DenyReason.BOT_SUSPECTED
    assert len(flagged_gate.store) == 1


def test_flagged_first_request_does_not_poison_identity(human_signals, clock):
    registry = GateRegistry(GateSettings(), backend=InMemoryBackend(), clock=clock)
    flagged = dataclasses.replace(human_signals, webdriver=True)

    assert registry.gate_for(flagged).evaluate("watch_ad").reason is DenyReason.BOT_SUSPECTED
    assert registry.gate_for(human_signals).evaluate("watch_ad").allowed


def test_concurrent_requests_for_one_identity_pass_cooldown_once(human_signals, clock):
    registry = GateRegistry(GateSettings(), backend=InMemoryBackend(), clock=clock)
    barrier = threading.Barrier(8)
    results = []

    def attempt():
        gate = registry.gate_for(human_signals)
        barrier.wait()
        results.append(gate.evaluate("claim_daily", 86_400))

    threads = [threading.Thread(target=attempt) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sum(result.allowed for result in results) == 1


def test_least_recently_used_identity_is_evicted(human_signals, clock):
    backend = InMemoryBackend()
    registry = GateRegistry(GateSettings(registry_max_identities=2), backend=backend, clock=clock)
    first, second, third = (_variant(human_signals, width) for width in (1280, 1600, 1920))

    first_gate = registry.gate_for(first)
    assert first_gate.evaluate("watch_ad", 60).allowed
    second_fingerprint = registry.gate_for(second).fingerprint()
    registry.gate_for(first)
    registry.gate_for(third)

    assert len(registry) == 2
    assert first_gate.fingerprint() in registry
    assert second_fingerprint not in registry

    registry.gate_for(second)

    assert first_gate.fingerprint() not in registry
    assert registry.gate_for(first).is_on_cooldown("watch_ad")


def test_identity_cap_must_be_positive(clock):
    with pytest.raises(ValueError):
        GateRegistry(GateSettings(), backend=InMemoryBackend(), clock=clock, max_identities=0)


def test_forget_clears_identity(human_signals, clock):
    backend = InMemoryBackend()
    registry = GateRegistry(GateSettings(), backend=backend, clock=clock)
    gate = registry.gate_for(human_signals)
    gate.evaluate("claim_daily", 86_400)

    registry.forget(gate.fingerprint())

    assert len(registry) == 0
    assert backend.keys() == []
    assert registry.gate_for(human_signals).evaluate("claim_daily", 86_400).allowed


def test_forget_clears_evicted_identity(human_signals, clock):
    backend = InMemoryBackend()
    registry = GateRegistry(GateSettings(), backend=backend, clock=clock, max_identities=1)
    gate = registry.gate_for(human_signals)
    gate.evaluate("claim_daily", 86_400)
    registry.gate_for(_variant(human_signals, 800))

    registry.forget(gate.fingerprint())

    assert f"tf-fraud-state:{gate.fingerprint()}" not in backend.keys()
    assert registry.gate_for(human_signals).evaluate("claim_daily", 86_400).allowed


def test_state_survives_registry_restart(human_signals, clock):
    backend = InMemoryBackend()
    GateRegistry(GateSettings(), backend=backend, clock=clock).gate_for(human_signals).evaluate("open_link", 300)

    restarted = GateRegistry(GateSettings(), backend=backend, clock=clock)

    assert restarted.gate_for(human_signals).is_on_cooldown("open_link")
