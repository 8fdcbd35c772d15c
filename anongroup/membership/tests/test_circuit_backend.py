"""Tests for the version-dispatching circuit backend."""

from __future__ import annotations

import time
from typing import Any, Mapping, Sequence

import pytest

from anongroup.membership.adapters.reference_engine import ReferenceEngine
from anongroup.membership.circuits.backend import CircuitBackend
from anongroup.membership.circuits.setup import clear_setup_cache
from anongroup.membership.exceptions import (
    CircuitVersionError,
    ConstraintError,
    ProofGenerationError,
)
from anongroup.membership.interfaces import CircuitSetup, ProvingEngine
from anongroup.membership.types import CircuitVersion


class SlowEngine(ProvingEngine):
    """Engine whose calls block past any short timeout."""

    def __init__(self, delay: float) -> None:
        self.delay = delay

    @property
    def engine_name(self) -> str:
        return "slow-test"

    def load_setup(self, circuit_version: CircuitVersion) -> CircuitSetup:
        return CircuitSetup(circuit_version, None, b"vk")

    def prove(self, setup: CircuitSetup, inputs: Mapping[str, Any]) -> bytes:
        time.sleep(self.delay)
        return b"proof"

    def verify(
        self, proof: bytes, public_inputs: Sequence[str], verification_key: bytes
    ) -> bool:
        time.sleep(self.delay)
        return True


class BrokenEngine(SlowEngine):
    @property
    def engine_name(self) -> str:
        return "broken-test"

    def prove(self, setup: CircuitSetup, inputs: Mapping[str, Any]) -> bytes:
        raise RuntimeError("engine crashed")

    def verify(
        self, proof: bytes, public_inputs: Sequence[str], verification_key: bytes
    ) -> bool:
        raise RuntimeError("engine crashed")


@pytest.fixture(autouse=True)
def fresh_setup_cache():
    clear_setup_cache()
    yield
    clear_setup_cache()


@pytest.fixture(scope="module")
def proof_material(issuer, ephemeral_key):
    backend = CircuitBackend(ReferenceEngine())
    circuit = backend.circuit(CircuitVersion.JWT_0_3_0)
    inputs = circuit.build_prover_inputs(
        issuer.token_for(ephemeral_key),
        issuer.jwk(),
        ephemeral_key=ephemeral_key,
        group_id="acme.com",
    )
    public_inputs = circuit.build_verifier_public_inputs(
        "acme.com",
        issuer.modulus,
        ephemeral_pubkey=ephemeral_key.public_key,
        ephemeral_pubkey_expiry=ephemeral_key.expiry,
    )
    return inputs, public_inputs


def test_default_engine_comes_from_factory(monkeypatch) -> None:
    monkeypatch.delenv("ANONGROUP_PROVING_ENGINE", raising=False)
    assert CircuitBackend().engine.engine_name == "reference"


@pytest.mark.trio
async def test_prove_and_verify(reference_backend, proof_material) -> None:
    inputs, public_inputs = proof_material
    proof = await reference_backend.prove("jwt-0.3.0", inputs)
    assert await reference_backend.verify("jwt-0.3.0", proof, public_inputs)


@pytest.mark.trio
async def test_count_mismatch_is_false_not_error(
    reference_backend, proof_material
) -> None:
    inputs, public_inputs = proof_material
    proof = await reference_backend.prove(CircuitVersion.JWT_0_3_0, inputs)
    assert not await reference_backend.verify(
        CircuitVersion.JWT_0_3_0, proof, public_inputs + public_inputs[:1]
    )
    assert not await reference_backend.verify(
        CircuitVersion.JWT_0_2_0, proof, public_inputs
    )


@pytest.mark.trio
async def test_unknown_version_raises(reference_backend, proof_material) -> None:
    inputs, public_inputs = proof_material
    with pytest.raises(CircuitVersionError):
        await reference_backend.prove("jwt-0.1.0", inputs)
    with pytest.raises(CircuitVersionError):
        await reference_backend.verify("jwt-0.1.0", b"", public_inputs)


@pytest.mark.trio
async def test_constraint_errors_propagate(reference_backend) -> None:
    with pytest.raises(ConstraintError):
        await reference_backend.prove(CircuitVersion.JWT_0_3_0, {})


@pytest.mark.trio
async def test_garbage_proof_is_false(reference_backend, proof_material) -> None:
    _, public_inputs = proof_material
    assert not await reference_backend.verify("jwt-0.3.0", b"junk", public_inputs)


@pytest.mark.trio
async def test_prove_timeout_raises() -> None:
    backend = CircuitBackend(SlowEngine(1.0), proof_timeout=0.05)
    with pytest.raises(ProofGenerationError, match="exceeded"):
        await backend.prove(CircuitVersion.JWT_0_3_0, {})


@pytest.mark.trio
async def test_verify_timeout_is_false() -> None:
    backend = CircuitBackend(SlowEngine(1.0), verify_timeout=0.05)
    assert not await backend.verify(CircuitVersion.JWT_0_3_0, b"p", ["0x0"] * 85)


@pytest.mark.trio
async def test_engine_crash_wrapped() -> None:
    backend = CircuitBackend(BrokenEngine(0))
    with pytest.raises(ProofGenerationError, match="broken-test prover failed"):
        await backend.prove(CircuitVersion.JWT_0_3_0, {})
    assert not await backend.verify(CircuitVersion.JWT_0_3_0, b"p", ["0x0"] * 85)
