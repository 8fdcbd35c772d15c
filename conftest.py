"""Shared fixtures: a local identity provider key, ephemeral keys and proofs."""

from __future__ import annotations

import pytest

from anongroup.client.keys import EphemeralKeyManager
from anongroup.identity import GoogleOAuthProvider, StaticKeySet
from anongroup.membership.adapters.reference_engine import ReferenceEngine
from anongroup.membership.circuits import get_circuit
from anongroup.membership.circuits.backend import CircuitBackend
from anongroup.membership.test_vectors.identity_tokens import (
    FakeIdentityIssuer,
    default_issuer,
)
from anongroup.membership.types import (
    PRIMARY_CIRCUIT_VERSION,
    EphemeralKey,
    MembershipRecord,
)


@pytest.fixture(scope="session")
def issuer() -> FakeIdentityIssuer:
    return default_issuer()


@pytest.fixture(scope="session")
def ephemeral_key() -> EphemeralKey:
    return EphemeralKeyManager().generate()


@pytest.fixture(scope="session")
def other_ephemeral_key() -> EphemeralKey:
    return EphemeralKeyManager().generate()


@pytest.fixture
def reference_backend() -> CircuitBackend:
    return CircuitBackend(ReferenceEngine())


@pytest.fixture
def google_provider(issuer, reference_backend):
    """Google provider backed by the local issuer's keys, without sign-in."""

    def build(token_source=None) -> GoogleOAuthProvider:
        return GoogleOAuthProvider(
            token_source,
            keys=StaticKeySet(issuer.jwks()),
            backend=reference_backend,
        )

    return build


@pytest.fixture(scope="session")
def prove_membership(issuer):
    """Build a reference-engine membership record for a key, synchronously."""
    backend = CircuitBackend(ReferenceEngine())
    circuit = get_circuit(PRIMARY_CIRCUIT_VERSION)

    def prove(key: EphemeralKey, group_id: str = "acme.com") -> MembershipRecord:
        inputs = circuit.build_prover_inputs(
            issuer.token_for(key, group_id=group_id),
            issuer.jwk(),
            ephemeral_key=key,
            group_id=group_id,
        )
        return MembershipRecord(
            provider="google-oauth",
            ephemeral_pubkey=key.public_key,
            ephemeral_pubkey_expiry=key.expiry,
            group_id=group_id,
            proof=backend.prove_sync(PRIMARY_CIRCUIT_VERSION, inputs),
            proof_args={"keyId": issuer.key_id},
        )

    return prove
