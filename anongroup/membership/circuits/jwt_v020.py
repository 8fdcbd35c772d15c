"""
jwt-0.2.0 membership circuit (legacy).

The nonce is a hash of message content rather than a key commitment, so each
proof covers exactly one message. Kept for verifying messages tagged with
this version.

Public inputs (102 field elements, in order):
    18  provider modulus limbs, least significant first
    50  group id bytes, zero padded
     1  group id length
    32  nonce bytes, zero padded
     1  nonce length
"""

from __future__ import annotations

from typing import Any, Mapping, Sequence

from ..config import LIMB_COUNT, NONCE_CLAIM_KEY
from ..exceptions import ConstraintError, NonceMismatchError
from ..tokens import decode_token, extract_claim
from ..types import CircuitVersion
from .base import (
    MembershipCircuit,
    bounded_vec,
    field_elements,
    pack_bytes,
    read_bounded_vec,
)

MAX_GROUP_ID_LENGTH = 50
NONCE_LENGTH = 32
PUBLIC_INPUT_COUNT = LIMB_COUNT + MAX_GROUP_ID_LENGTH + 1 + NONCE_LENGTH + 1


def _nonce_bytes(nonce: str) -> bytes:
    encoded = nonce.encode("utf-8")
    if len(encoded) > NONCE_LENGTH:
        raise ConstraintError(f"nonce exceeds {NONCE_LENGTH} bytes")
    return encoded


def _stringify(vec: dict[str, Any]) -> dict[str, Any]:
    return {"storage": [str(b) for b in vec["storage"]], "len": vec["len"]}


class JwtCircuitV020(MembershipCircuit):
    version = CircuitVersion.JWT_0_2_0
    public_input_count = PUBLIC_INPUT_COUNT
    max_group_id_length = MAX_GROUP_ID_LENGTH

    def build_prover_inputs(
        self,
        identity_token: str,
        provider_jwk: Mapping[str, Any],
        *,
        group_id: str,
        nonce: str,
        precompute_claims: Sequence[str] | None = None,
    ) -> dict[str, Any]:
        """
        Build the legacy prover input map.

        ``nonce`` is the message-content nonce the token was requested with.
        """
        token = decode_token(identity_token)
        if str(token.payload.get(NONCE_CLAIM_KEY)) != nonce:
            raise NonceMismatchError("identity token nonce does not match the message")

        group_bytes = self._group_id_bytes(group_id)
        nonce_bytes = _nonce_bytes(nonce)
        rsa_inputs = self._rsa_inputs(token, provider_jwk)
        precompute = self._precompute(token, precompute_claims)
        partial = precompute.partial

        return {
            "partial_data": {
                "storage": [str(b) for b in partial.remaining],
                "len": partial.remaining_length,
            },
            "partial_hash": partial.state_words(),
            "full_data_length": partial.total_length,
            "b64_offset": precompute.base64_decode_offset,
            "pubkey_modulus_limbs": rsa_inputs["modulus"],
            "redc_params_limbs": rsa_inputs["redc"],
            "signature_limbs": rsa_inputs["signature"],
            "domain": _stringify(bounded_vec(group_bytes, MAX_GROUP_ID_LENGTH)),
            "nonce": _stringify(bounded_vec(nonce_bytes, NONCE_LENGTH)),
        }

    def build_verifier_public_inputs(
        self,
        group_id: str,
        provider_modulus: int,
        *,
        nonce: str | None = None,
        **_: Any,
    ) -> list[str]:
        if not nonce:
            raise ValueError("jwt-0.2.0 verification requires the message nonce")
        nonce_bytes = _nonce_bytes(nonce)
        elements = self._common_public_inputs(group_id, provider_modulus)
        elements += field_elements(pack_bytes(nonce_bytes, NONCE_LENGTH))
        elements += field_elements([len(nonce_bytes)])
        return elements

    def evaluate(self, inputs: Mapping[str, Any]) -> list[str]:
        modulus, fragment = self._check_signature(
            inputs,
            offset_key="b64_offset",
            modulus_key="pubkey_modulus_limbs",
            redc_key="redc_params_limbs",
            signature_key="signature_limbs",
        )

        try:
            group_bytes = read_bounded_vec(inputs["domain"], MAX_GROUP_ID_LENGTH)
            nonce_bytes = read_bounded_vec(inputs["nonce"], NONCE_LENGTH)
        except (KeyError, TypeError, ValueError) as exc:
            raise ConstraintError(f"malformed circuit inputs: {exc}") from exc

        if str(extract_claim(fragment, NONCE_CLAIM_KEY)).encode("utf-8") != nonce_bytes:
            raise ConstraintError("nonce claim does not match the nonce input")
        self._check_group_claim(fragment, group_bytes)

        elements = self._common_public_inputs(group_bytes, modulus)
        elements += field_elements(pack_bytes(nonce_bytes, NONCE_LENGTH))
        elements += field_elements([len(nonce_bytes)])
        return elements
