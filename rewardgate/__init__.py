"""Reward gate exports."""

from .config import GateSettings, get_settings
from .fingerprint import Fingerprinter, device_fingerprint
from .gate import ActionGate, DenyReason, GateDecision
from .heuristics import AutomationClassifier
from .registry import GateRegistry
from .reputation import IPReputationClient, IPReputationResult
from .signals import EnvironmentSignals
from .state import ActionRecord, BehaviorState
from .store import BehaviorStore, FileBackend, InMemoryBackend, KeyValueBackend

__all__ = [
    "ActionGate",
    "ActionRecord",
    "AutomationClassifier",
    "BehaviorState",
    "BehaviorStore",
    "DenyReason",
    "EnvironmentSignals",
    "FileBackend",
    "Fingerprinter",
    "GateDecision",
    "GateRegistry",
    "GateSettings",
    "InMemoryBackend",
    "IPReputationClient",
    "IPReputationResult",
    "KeyValueBackend",
    "device_fingerprint",
    "get_settings",
]
