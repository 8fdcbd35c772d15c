"""Client side: ephemeral keys, registry access and the membership lifecycle."""
from .keys import EphemeralKeyManager, verify_signature
from .orchestrator import MembershipOrchestrator, MembershipState, verify_message
from .registry import InMemoryRegistry, Registry, RegistryClient
from .storage import FileSecretStore, MemorySecretStore

__all__ = [
    "EphemeralKeyManager",
    "verify_signature",
    "MembershipOrchestrator",
    "MembershipState",
    "verify_message",
    "InMemoryRegistry",
    "Registry",
    "RegistryClient",
    "FileSecretStore",
    "MemorySecretStore",
]
