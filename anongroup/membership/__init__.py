"""Public API for anongroup.membership.

Heavy modules (engines, circuit adapters) are imported lazily on first
attribute access.
"""
from __future__ import annotations

from importlib import import_module

from .exceptions import MembershipProtocolError
from .factory import get_proving_engine
from .feature_flags import get_engine_type, set_engine_type
from .interfaces import CircuitSetup, IdentityProvider, ProvingEngine, SecretStore
from .types import (
    AnonGroup,
    CircuitVersion,
    EphemeralKey,
    MembershipRecord,
    Message,
    ProofBundle,
    SignedMessage,
    SignedMessageWithProof,
)

__all__ = [
    "get_proving_engine",
    "get_engine_type",
    "set_engine_type",
    "MembershipProtocolError",
    "CircuitSetup",
    "IdentityProvider",
    "ProvingEngine",
    "SecretStore",
    "AnonGroup",
    "CircuitVersion",
    "EphemeralKey",
    "MembershipRecord",
    "Message",
    "ProofBundle",
    "SignedMessage",
    "SignedMessageWithProof",
    "CircuitBackend",
    "ReferenceEngine",
    "BarretenbergEngine",
    "get_circuit",
]

_LAZY_EXPORTS = {
    "CircuitBackend": "circuits.backend",
    "ReferenceEngine": "adapters.reference_engine",
    "BarretenbergEngine": "adapters.barretenberg",
    "get_circuit": "circuits",
}


def __getattr__(name: str):
    if name in _LAZY_EXPORTS:
        module = import_module(f"{__name__}.{_LAZY_EXPORTS[name]}")
        value = getattr(module, name)
        globals()[name] = value
        return value
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
