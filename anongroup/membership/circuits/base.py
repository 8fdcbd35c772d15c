"""
Shared machinery for versioned JWT membership circuits.

A circuit adapter knows two things about its circuit: how to build the
prover input map from an identity token, and the exact ordered list of
public inputs a verifier must supply. It can also re-execute the circuit's
constraints in Python (``evaluate``), which the reference engine uses.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping, Sequence

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa, utils

from ..config import (
    GROUP_CLAIM_KEYS,
    LIMB_BITS,
    LIMB_COUNT,
    MAX_PARTIAL_DATA_LENGTH,
    NONCE_CLAIM_KEY,
    RSA_PUBLIC_EXPONENT,
)
from ..exceptions import ConstraintError, LimbOverflowError
from ..limbs import (
    join_limbs,
    limbs_to_strings,
    redc_parameter,
    split_to_limbs,
    to_field_hex,
)
from ..partial_sha import complete_sha256
from ..tokens import (
    DecodedToken,
    JwtPrecompute,
    decode_payload_tail,
    extract_claim,
    jwk_modulus,
    jwt_sha_precompute,
)
from ..types import CircuitVersion


def pack_bytes(value: bytes, capacity: int) -> list[int]:
    """Zero-pad ``value`` to ``capacity`` bytes, as a list of byte values."""
    if len(value) > capacity:
        raise ConstraintError(
            f"value is {len(value)} bytes, circuit capacity is {capacity}"
        )
    return list(value) + [0] * (capacity - len(value))


def bounded_vec(value: bytes, capacity: int) -> dict[str, Any]:
    return {"storage": pack_bytes(value, capacity), "len": len(value)}


def read_bounded_vec(vec: Mapping[str, Any], capacity: int) -> bytes:
    """
    Read a ``{"storage", "len"}`` map back into bytes.

    Raises:
        ConstraintError: If the shape or padding is invalid
    """
    storage = [int(b) for b in vec["storage"]]
    length = int(vec["len"])
    if len(storage) != capacity or not 0 <= length <= capacity:
        raise ConstraintError("bounded vector has the wrong shape")
    if any(not 0 <= b <= 255 for b in storage):
        raise ConstraintError("bounded vector holds a non-byte value")
    if any(storage[length:]):
        raise ConstraintError("bounded vector padding is not zero")
    return bytes(storage[:length])


def field_elements(values: Sequence[int]) -> list[str]:
    return [to_field_hex(int(v)) for v in values]


class MembershipCircuit(ABC):
    """
    Adapter for one version of the JWT membership circuit.

    Subclasses set ``version``, ``public_input_count`` and
    ``max_group_id_length``.
    """

    version: CircuitVersion
    public_input_count: int
    max_group_id_length: int
    # Extra bits of the Barrett reduction parameter for this circuit's bignum.
    redc_extra_bits: int = 4
    max_partial_data_length: int = MAX_PARTIAL_DATA_LENGTH

    # ========================================================================
    # PROVER SIDE
    # ========================================================================

    def _precompute(
        self, token: DecodedToken, claims: Sequence[str] | None
    ) -> JwtPrecompute:
        claims = tuple(claims) if claims else GROUP_CLAIM_KEYS + (NONCE_CLAIM_KEY,)
        return jwt_sha_precompute(token, claims, self.max_partial_data_length)

    def _rsa_inputs(
        self, token: DecodedToken, provider_jwk: Mapping[str, Any]
    ) -> dict:
        modulus = jwk_modulus(provider_jwk)
        try:
            return {
                "modulus": limbs_to_strings(split_to_limbs(modulus)),
                "redc": limbs_to_strings(
                    split_to_limbs(redc_parameter(modulus, self.redc_extra_bits))
                ),
                "signature": limbs_to_strings(split_to_limbs(token.signature)),
            }
        except LimbOverflowError as exc:
            raise ConstraintError(
                f"RSA value does not fit the limb layout: {exc}"
            ) from exc

    def _group_id_bytes(self, group_id: str | bytes) -> bytes:
        if isinstance(group_id, bytes):
            encoded = group_id
        else:
            encoded = group_id.encode("utf-8")
        if not encoded:
            raise ConstraintError("group id cannot be empty")
        if len(encoded) > self.max_group_id_length:
            raise ConstraintError(
                f"group id is {len(encoded)} bytes, "
                f"{self.version.value} supports at most {self.max_group_id_length}"
            )
        return encoded

    @abstractmethod
    def build_prover_inputs(
        self, identity_token: str, provider_jwk: Mapping[str, Any], **kwargs: Any
    ) -> dict[str, Any]:
        """Build the prover input map."""

    # ========================================================================
    # VERIFIER SIDE
    # ========================================================================

    def _common_public_inputs(
        self, group_id: str | bytes, provider_modulus: int
    ) -> list[str]:
        group_bytes = self._group_id_bytes(group_id)
        elements = split_to_limbs(provider_modulus, LIMB_BITS, LIMB_COUNT)
        elements += pack_bytes(group_bytes, self.max_group_id_length)
        elements.append(len(group_bytes))
        return field_elements(elements)

    @abstractmethod
    def build_verifier_public_inputs(
        self, group_id: str, provider_modulus: int, **kwargs: Any
    ) -> list[str]:
        """Ordered public inputs, each ``0x`` + 64 hex characters."""

    # ========================================================================
    # CONSTRAINT EXECUTION
    # ========================================================================

    @abstractmethod
    def evaluate(self, inputs: Mapping[str, Any]) -> list[str]:
        """
        Execute the circuit's constraints over a prover input map.

        Returns:
            The public inputs the circuit exposes for these inputs

        Raises:
            ConstraintError: If any constraint fails
        """

    def _check_signature(
        self,
        inputs: Mapping[str, Any],
        *,
        offset_key: str,
        modulus_key: str,
        redc_key: str,
        signature_key: str,
    ) -> tuple[int, bytes]:
        """
        Check the RSA signature over the completed partial hash.

        Returns the provider modulus and the decoded payload fragment.
        """
        try:
            modulus = join_limbs(inputs[modulus_key])
            redc = join_limbs(inputs[redc_key])
            signature = join_limbs(inputs[signature_key])
            partial = inputs["partial_data"]
            remaining = read_bounded_vec(partial, self.max_partial_data_length)
            state = [int(word) for word in inputs["partial_hash"]]
            total_length = int(inputs["full_data_length"])
            offset = int(inputs[offset_key])
        except (KeyError, TypeError, ValueError, LimbOverflowError) as exc:
            raise ConstraintError(f"malformed circuit inputs: {exc}") from exc

        if any(
            len(inputs[key]) != LIMB_COUNT
            for key in (modulus_key, redc_key, signature_key)
        ):
            raise ConstraintError("limb arrays have the wrong length")
        if modulus.bit_length() < 2048:
            raise ConstraintError("provider modulus is not 2048 bits")
        if redc != redc_parameter(modulus, self.redc_extra_bits):
            raise ConstraintError("reduction parameter does not match modulus")
        if not 0 < signature < modulus:
            raise ConstraintError("signature out of range")
        if not 1 <= offset <= 4:
            raise ConstraintError("base64 offset out of range")

        try:
            digest = complete_sha256(state, remaining, total_length)
        except ValueError as exc:
            raise ConstraintError(f"partial hash is inconsistent: {exc}") from exc

        public_key = rsa.RSAPublicNumbers(RSA_PUBLIC_EXPONENT, modulus).public_key()
        try:
            public_key.verify(
                signature.to_bytes((modulus.bit_length() + 7) // 8, "big"),
                digest,
                padding.PKCS1v15(),
                utils.Prehashed(hashes.SHA256()),
            )
        except InvalidSignature as exc:
            raise ConstraintError("provider signature does not verify") from exc

        return modulus, decode_payload_tail(remaining, offset)

    @staticmethod
    def _check_group_claim(fragment: bytes, group_id: bytes) -> None:
        for claim in GROUP_CLAIM_KEYS:
            try:
                value = extract_claim(fragment, claim)
            except ConstraintError:
                continue
            if str(value).encode("utf-8") != group_id:
                raise ConstraintError(f"claim {claim!r} does not match the group id")
            return
        raise ConstraintError("no organization claim in signed data")
