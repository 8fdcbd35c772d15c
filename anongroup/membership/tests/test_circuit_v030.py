"""
Tests for the jwt-0.3.0 circuit adapter.

Prover-side inputs and verifier-side public inputs are built independently;
the reference engine's constraint execution must reproduce the verifier's
list exactly, and any single-element change must fail verification.
"""

from __future__ import annotations

import copy

import pytest

from anongroup.membership.adapters.reference_engine import ReferenceEngine
from anongroup.membership.circuits import get_circuit
from anongroup.membership.circuits.jwt_v030 import (
    MAX_GROUP_ID_LENGTH,
    PUBLIC_INPUT_COUNT,
)
from anongroup.membership.commitments import ephemeral_pubkey_field
from anongroup.membership.exceptions import ConstraintError, NonceMismatchError
from anongroup.membership.limbs import from_field_hex, join_limbs, redc_parameter
from anongroup.membership.types import CircuitVersion

CIRCUIT = get_circuit(CircuitVersion.JWT_0_3_0)


@pytest.fixture(scope="module")
def prover_inputs(issuer, ephemeral_key) -> dict:
    token = issuer.token_for(ephemeral_key, group_id="acme.com")
    return CIRCUIT.build_prover_inputs(
        token, issuer.jwk(), ephemeral_key=ephemeral_key, group_id="acme.com"
    )


@pytest.fixture(scope="module")
def public_inputs(issuer, ephemeral_key) -> list[str]:
    return CIRCUIT.build_verifier_public_inputs(
        "acme.com",
        issuer.modulus,
        ephemeral_pubkey=ephemeral_key.public_key,
        ephemeral_pubkey_expiry=ephemeral_key.expiry,
    )


def test_public_input_count() -> None:
    assert PUBLIC_INPUT_COUNT == 85
    assert CIRCUIT.public_input_count == 85


def test_prover_input_shapes(prover_inputs, issuer, ephemeral_key) -> None:
    assert len(prover_inputs["jwt_pubkey_modulus_limbs"]) == 18
    assert len(prover_inputs["jwt_pubkey_redc_params_limbs"]) == 18
    assert len(prover_inputs["jwt_signature_limbs"]) == 18
    assert len(prover_inputs["partial_hash"]) == 8
    assert len(prover_inputs["partial_data"]["storage"]) == 640
    assert prover_inputs["domain"]["len"] == len("acme.com")
    assert len(prover_inputs["domain"]["storage"]) == MAX_GROUP_ID_LENGTH
    assert 1 <= prover_inputs["base64_decode_offset"] <= 4

    modulus = join_limbs(prover_inputs["jwt_pubkey_modulus_limbs"])
    assert modulus == issuer.modulus
    assert join_limbs(prover_inputs["jwt_pubkey_redc_params_limbs"]) == (
        redc_parameter(modulus, 4)
    )
    assert prover_inputs["ephemeral_pubkey"] == str(ephemeral_key.pubkey_field)
    assert prover_inputs["ephemeral_pubkey_expiry"] == str(ephemeral_key.expiry_seconds)


def test_public_input_layout(public_inputs, issuer, ephemeral_key) -> None:
    assert len(public_inputs) == 85
    assert all(len(e) == 66 and e.startswith("0x") for e in public_inputs)

    values = [from_field_hex(e) for e in public_inputs]
    assert join_limbs(values[:18]) == issuer.modulus
    assert bytes(values[18 : 18 + 8]) == b"acme.com"
    assert values[18 + 8 : 18 + 64] == [0] * 56
    assert values[82] == 8
    assert values[83] == ephemeral_pubkey_field(ephemeral_key.public_key)
    assert values[84] == ephemeral_key.expiry_seconds


def test_evaluate_matches_verifier_inputs(prover_inputs, public_inputs) -> None:
    assert CIRCUIT.evaluate(prover_inputs) == public_inputs


def test_single_element_perturbation_fails(prover_inputs, public_inputs) -> None:
    engine = ReferenceEngine()
    setup = engine.load_setup(CircuitVersion.JWT_0_3_0)
    proof = engine.prove(setup, prover_inputs)
    assert engine.verify(proof, public_inputs, setup.verification_key)

    for index, element in enumerate(public_inputs):
        tampered = list(public_inputs)
        tampered[index] = "0x" + format(from_field_hex(element) ^ 1, "064x")
        assert not engine.verify(proof, tampered, setup.verification_key), index


def test_nonce_mismatch_raises_before_building(issuer, ephemeral_key) -> None:
    token = issuer.token_for(ephemeral_key, nonce="12345")
    with pytest.raises(NonceMismatchError):
        CIRCUIT.build_prover_inputs(
            token, issuer.jwk(), ephemeral_key=ephemeral_key, group_id="acme.com"
        )


def test_token_for_other_key_is_rejected(issuer, ephemeral_key, other_ephemeral_key):
    token = issuer.token_for(other_ephemeral_key)
    with pytest.raises(NonceMismatchError):
        CIRCUIT.build_prover_inputs(
            token, issuer.jwk(), ephemeral_key=ephemeral_key, group_id="acme.com"
        )


def test_group_id_too_long(issuer, ephemeral_key) -> None:
    long_id = "a" * (MAX_GROUP_ID_LENGTH + 1)
    token = issuer.token_for(ephemeral_key, group_id=long_id)
    with pytest.raises(ConstraintError):
        CIRCUIT.build_prover_inputs(
            token, issuer.jwk(), ephemeral_key=ephemeral_key, group_id=long_id
        )


def test_evaluate_rejects_wrong_group(issuer, ephemeral_key) -> None:
    token = issuer.token_for(ephemeral_key, group_id="acme.com")
    inputs = CIRCUIT.build_prover_inputs(
        token, issuer.jwk(), ephemeral_key=ephemeral_key, group_id="evil.com"
    )
    with pytest.raises(ConstraintError, match="does not match the group id"):
        CIRCUIT.evaluate(inputs)


@pytest.mark.parametrize(
    "field, value",
    [
        ("ephemeral_pubkey_salt", "1"),
        ("ephemeral_pubkey_expiry", "1"),
        ("ephemeral_pubkey", "2"),
    ],
)
def test_evaluate_rejects_commitment_change(prover_inputs, field, value) -> None:
    inputs = copy.deepcopy(prover_inputs)
    inputs[field] = value
    with pytest.raises(ConstraintError, match="nonce"):
        CIRCUIT.evaluate(inputs)


def test_evaluate_rejects_forged_signature(prover_inputs) -> None:
    inputs = copy.deepcopy(prover_inputs)
    inputs["jwt_signature_limbs"][0] = str(int(inputs["jwt_signature_limbs"][0]) ^ 1)
    with pytest.raises(ConstraintError, match="signature"):
        CIRCUIT.evaluate(inputs)


def test_evaluate_rejects_tampered_tail(prover_inputs) -> None:
    inputs = copy.deepcopy(prover_inputs)
    inputs["partial_data"]["storage"][0] ^= 1
    with pytest.raises(ConstraintError):
        CIRCUIT.evaluate(inputs)


def test_evaluate_rejects_wrong_redc(prover_inputs) -> None:
    inputs = copy.deepcopy(prover_inputs)
    inputs["jwt_pubkey_redc_params_limbs"][0] = "0"
    with pytest.raises(ConstraintError, match="reduction parameter"):
        CIRCUIT.evaluate(inputs)


def test_evaluate_rejects_missing_input(prover_inputs) -> None:
    inputs = copy.deepcopy(prover_inputs)
    del inputs["domain"]
    with pytest.raises(ConstraintError):
        CIRCUIT.evaluate(inputs)


@pytest.mark.parametrize("claim", ["tid", "https://slack.com/team_id"])
def test_other_providers_group_claims(issuer, ephemeral_key, claim) -> None:
    token = issuer.token_for(ephemeral_key, group_claim=claim, group_id="T0ACME")
    inputs = CIRCUIT.build_prover_inputs(
        token,
        issuer.jwk(),
        ephemeral_key=ephemeral_key,
        group_id="T0ACME",
        precompute_claims=(claim, "nonce"),
    )
    expected = CIRCUIT.build_verifier_public_inputs(
        "T0ACME",
        issuer.modulus,
        ephemeral_pubkey=ephemeral_key.public_key,
        ephemeral_pubkey_expiry=ephemeral_key.expiry,
    )
    assert CIRCUIT.evaluate(inputs) == expected
