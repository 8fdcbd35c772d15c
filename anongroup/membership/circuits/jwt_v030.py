"""
jwt-0.3.0 membership circuit (primary).

Proves that a provider-signed identity token carries an organization claim
equal to the public group id and a nonce that commits to a public ephemeral
pubkey and expiry.

Public inputs (85 field elements, in order):
    18  provider modulus limbs, least significant first
    64  group id bytes, zero padded
     1  group id length
     1  ephemeral pubkey field element
     1  ephemeral pubkey expiry, unix seconds
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Mapping, Sequence

from ..commitments import (
    ephemeral_key_commitment,
    ephemeral_pubkey_field,
    expiry_to_seconds,
)
from ..config import FIELD_MODULUS, LIMB_COUNT, NONCE_CLAIM_KEY
from ..exceptions import ConstraintError, NonceMismatchError
from ..limbs import to_field_hex
from ..tokens import decode_token, extract_claim
from ..types import CircuitVersion, EphemeralKey
from .base import MembershipCircuit, bounded_vec, read_bounded_vec

logger = logging.getLogger(__name__)

MAX_GROUP_ID_LENGTH = 64
PUBLIC_INPUT_COUNT = LIMB_COUNT + MAX_GROUP_ID_LENGTH + 1 + 1 + 1


class JwtCircuitV030(MembershipCircuit):
    version = CircuitVersion.JWT_0_3_0
    public_input_count = PUBLIC_INPUT_COUNT
    max_group_id_length = MAX_GROUP_ID_LENGTH

    def build_prover_inputs(
        self,
        identity_token: str,
        provider_jwk: Mapping[str, Any],
        *,
        ephemeral_key: EphemeralKey,
        group_id: str,
        precompute_claims: Sequence[str] | None = None,
    ) -> dict[str, Any]:
        """
        Build the prover input map for an identity token.

        Args:
            identity_token: Compact JWT returned by the provider
            provider_jwk: Provider signing key, selected by the token's ``kid``
            ephemeral_key: Key whose commitment must be the token nonce
            group_id: Organization id extracted from the token
            precompute_claims: Claims that must stay inside the in-circuit tail

        Raises:
            InvalidTokenError: If the token is malformed
            NonceMismatchError: If the token nonce is not the key commitment
            KeyResolutionError: If the JWK is unusable
            ConstraintError: If a value does not fit the circuit
        """
        token = decode_token(identity_token)

        expected_nonce = ephemeral_key.nonce
        if str(token.payload.get(NONCE_CLAIM_KEY)) != expected_nonce:
            logger.warning("identity token nonce does not match key commitment")
            raise NonceMismatchError(
                "identity token nonce does not match the ephemeral key commitment"
            )

        group_bytes = self._group_id_bytes(group_id)
        rsa_inputs = self._rsa_inputs(token, provider_jwk)
        precompute = self._precompute(token, precompute_claims)
        partial = precompute.partial

        return {
            "partial_data": {
                "storage": list(partial.remaining),
                "len": partial.remaining_length,
            },
            "partial_hash": partial.state_words(),
            "full_data_length": partial.total_length,
            "base64_decode_offset": precompute.base64_decode_offset,
            "jwt_pubkey_modulus_limbs": rsa_inputs["modulus"],
            "jwt_pubkey_redc_params_limbs": rsa_inputs["redc"],
            "jwt_signature_limbs": rsa_inputs["signature"],
            "ephemeral_pubkey": str(ephemeral_key.pubkey_field),
            "ephemeral_pubkey_salt": str(ephemeral_key.salt),
            "ephemeral_pubkey_expiry": str(ephemeral_key.expiry_seconds),
            "domain": bounded_vec(group_bytes, MAX_GROUP_ID_LENGTH),
        }

    def build_verifier_public_inputs(
        self,
        group_id: str,
        provider_modulus: int,
        *,
        ephemeral_pubkey: int,
        ephemeral_pubkey_expiry: datetime | int,
        **_: Any,
    ) -> list[str]:
        elements = self._common_public_inputs(group_id, provider_modulus)
        elements.append(to_field_hex(ephemeral_pubkey_field(ephemeral_pubkey)))
        elements.append(to_field_hex(expiry_to_seconds(ephemeral_pubkey_expiry)))
        return elements

    def evaluate(self, inputs: Mapping[str, Any]) -> list[str]:
        modulus, fragment = self._check_signature(
            inputs,
            offset_key="base64_decode_offset",
            modulus_key="jwt_pubkey_modulus_limbs",
            redc_key="jwt_pubkey_redc_params_limbs",
            signature_key="jwt_signature_limbs",
        )

        try:
            group_bytes = read_bounded_vec(inputs["domain"], MAX_GROUP_ID_LENGTH)
            pubkey_field = int(inputs["ephemeral_pubkey"])
            salt = int(inputs["ephemeral_pubkey_salt"])
            expiry = int(inputs["ephemeral_pubkey_expiry"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ConstraintError(f"malformed circuit inputs: {exc}") from exc

        if not group_bytes:
            raise ConstraintError("group id cannot be empty")
        for value in (pubkey_field, salt, expiry):
            if not 0 <= value < FIELD_MODULUS:
                raise ConstraintError("input is not a field element")

        commitment = ephemeral_key_commitment(pubkey_field, salt, expiry)
        if str(extract_claim(fragment, NONCE_CLAIM_KEY)) != str(commitment):
            raise ConstraintError("nonce does not commit to the ephemeral key")
        self._check_group_claim(fragment, group_bytes)

        elements = self._common_public_inputs(group_bytes, modulus)
        elements.append(to_field_hex(pubkey_field))
        elements.append(to_field_hex(expiry))
        return elements
