"""Tests for the legacy jwt-0.2.0 circuit adapter."""

from __future__ import annotations

import pytest

from anongroup.membership.adapters.reference_engine import ReferenceEngine
from anongroup.membership.circuits import get_circuit
from anongroup.membership.circuits.jwt_v020 import PUBLIC_INPUT_COUNT
from anongroup.membership.commitments import legacy_nonce
from anongroup.membership.exceptions import ConstraintError, NonceMismatchError
from anongroup.membership.limbs import from_field_hex, join_limbs
from anongroup.membership.types import CircuitVersion

CIRCUIT = get_circuit(CircuitVersion.JWT_0_2_0)
NONCE = legacy_nonce("hello team", 1_700_000_000_000)


@pytest.fixture(scope="module")
def prover_inputs(issuer, ephemeral_key) -> dict:
    token = issuer.token_for(ephemeral_key, nonce=NONCE)
    return CIRCUIT.build_prover_inputs(
        token, issuer.jwk(), group_id="acme.com", nonce=NONCE
    )


@pytest.fixture(scope="module")
def public_inputs(issuer) -> list[str]:
    return CIRCUIT.build_verifier_public_inputs(
        "acme.com", issuer.modulus, nonce=NONCE
    )


def test_public_input_count() -> None:
    assert PUBLIC_INPUT_COUNT == 102


def test_legacy_input_names(prover_inputs) -> None:
    assert "b64_offset" in prover_inputs
    assert len(prover_inputs["pubkey_modulus_limbs"]) == 18
    assert len(prover_inputs["domain"]["storage"]) == 50
    assert prover_inputs["nonce"]["len"] == 32
    assert all(isinstance(b, str) for b in prover_inputs["nonce"]["storage"])


def test_public_input_layout(public_inputs, issuer) -> None:
    values = [from_field_hex(e) for e in public_inputs]
    assert len(values) == 102
    assert join_limbs(values[:18]) == issuer.modulus
    assert bytes(values[18:26]) == b"acme.com"
    assert values[68] == 8
    assert bytes(values[69:101]) == NONCE.encode("ascii")
    assert values[101] == 32


def test_evaluate_matches_verifier_inputs(prover_inputs, public_inputs) -> None:
    assert CIRCUIT.evaluate(prover_inputs) == public_inputs


def test_single_element_perturbation_fails(prover_inputs, public_inputs) -> None:
    engine = ReferenceEngine()
    setup = engine.load_setup(CircuitVersion.JWT_0_2_0)
    proof = engine.prove(setup, prover_inputs)
    assert engine.verify(proof, public_inputs, setup.verification_key)

    for index, element in enumerate(public_inputs):
        tampered = list(public_inputs)
        tampered[index] = "0x" + format(from_field_hex(element) ^ 1, "064x")
        assert not engine.verify(proof, tampered, setup.verification_key), index


def test_verifier_requires_nonce(issuer) -> None:
    with pytest.raises(ValueError):
        CIRCUIT.build_verifier_public_inputs("acme.com", issuer.modulus)


def test_nonce_mismatch(issuer, ephemeral_key) -> None:
    token = issuer.token_for(ephemeral_key, nonce=NONCE)
    with pytest.raises(NonceMismatchError):
        CIRCUIT.build_prover_inputs(
            token,
            issuer.jwk(),
            group_id="acme.com",
            nonce=legacy_nonce("other", 1),
        )


def test_group_id_capacity_is_50(issuer) -> None:
    with pytest.raises(ConstraintError):
        CIRCUIT.build_verifier_public_inputs("a" * 51, issuer.modulus, nonce=NONCE)
    assert len(
        CIRCUIT.build_verifier_public_inputs("a" * 50, issuer.modulus, nonce=NONCE)
    ) == 102


def test_evaluate_rejects_nonce_input_change(prover_inputs) -> None:
    inputs = dict(prover_inputs)
    other = legacy_nonce("other", 1).encode("ascii")
    inputs["nonce"] = {"storage": [str(b) for b in other], "len": 32}
    with pytest.raises(ConstraintError, match="nonce"):
        CIRCUIT.evaluate(inputs)
