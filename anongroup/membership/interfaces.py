"""
Abstract interfaces for proving engines, identity providers and secret stores.

WARNING: Prototype interfaces. Implementations decide the security properties;
nothing here validates cryptographic correctness.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import (
    Any,
    Dict,
    Hashable,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    runtime_checkable,
)

from .types import AnonGroup, CircuitVersion, EphemeralKey, ProofBundle


@dataclass(frozen=True)
class CircuitSetup:
    """
    Engine setup data for one circuit version.

    Attributes:
        circuit_version: Version the artifact implements
        circuit: Engine-specific circuit artifact (compiled bytecode or descriptor)
        verification_key: Serialized verification key
    """

    circuit_version: CircuitVersion
    circuit: Any
    verification_key: bytes


class ProvingEngine(ABC):
    """
    Black-box ZK proving system.

    Engines are stateless apart from memoized setup data; ``prove`` and
    ``verify`` are blocking and are run in worker threads by callers.
    """

    @property
    @abstractmethod
    def engine_name(self) -> str:
        """Registry name of the engine."""

    def setup_key(self) -> Hashable:
        """
        Identity of the artifacts ``load_setup`` reads.

        Engines configured to read different artifacts must return
        different keys.
        """
        return self.engine_name

    @abstractmethod
    def load_setup(self, circuit_version: CircuitVersion) -> CircuitSetup:
        """
        Load the circuit artifact and verification key for a version.

        Called at most once per process per version through the setup cache.
        """

    @abstractmethod
    def prove(self, setup: CircuitSetup, inputs: Mapping[str, Any]) -> bytes:
        """
        Produce a proof for the prover input map.

        Raises:
            ConstraintError: If the inputs do not satisfy the circuit
            ProofGenerationError: If the engine fails
        """

    @abstractmethod
    def verify(
        self,
        proof: bytes,
        public_inputs: Sequence[str],
        verification_key: bytes,
    ) -> bool:
        """Return True only if the proof is valid for the public inputs."""


class IdentityProvider(ABC):
    """An OAuth identity provider that issues organization-scoped tokens."""

    @abstractmethod
    def name(self) -> str:
        """Registry name, e.g. ``google-oauth``."""

    @abstractmethod
    def get_slug(self) -> str:
        """URL slug for groups of this provider."""

    @abstractmethod
    def get_anon_group(self, group_id: str) -> AnonGroup:
        ...

    @abstractmethod
    async def generate_proof(self, ephemeral_key: EphemeralKey) -> ProofBundle:
        """Sign the user in with the key's nonce and prove group membership."""

    @abstractmethod
    async def verify_proof(
        self,
        proof: bytes,
        group_id: str,
        ephemeral_pubkey: int,
        ephemeral_pubkey_expiry: datetime,
        proof_args: Dict[str, Any],
        *,
        circuit_version: CircuitVersion | str,
        nonce: Optional[str] = None,
    ) -> bool:
        ...


@runtime_checkable
class SecretStore(Protocol):
    """Key-value storage for ephemeral key material."""

    def put(self, name: str, value: str) -> None:
        ...

    def get(self, name: str) -> Optional[str]:
        ...

    def clear(self) -> None:
        ...
