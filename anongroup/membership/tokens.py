"""
Identity token (JWT) parsing for circuit input construction.

Tokens are decoded WITHOUT signature verification. The circuit (or the
reference engine) checks the provider signature; this module only extracts
the pieces the circuit consumes.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

import jwt
from cryptography.hazmat.primitives.asymmetric import rsa
from jwt.algorithms import RSAAlgorithm
from jwt.utils import base64url_decode

from .config import MAX_PARTIAL_DATA_LENGTH, PRECOMPUTE_SELECTOR_LENGTH
from .exceptions import ConstraintError, InvalidTokenError, KeyResolutionError
from .partial_sha import PartialHash, partial_sha256

# Base64 encodes 3 bytes into a quad of 4 characters.
_B64_QUAD = 4
_B64_GROUP = 3


@dataclass(frozen=True)
class DecodedToken:
    """A JWT split into the parts the circuits consume."""

    raw: str
    header: dict[str, Any]
    payload: dict[str, Any]
    header_b64: str
    payload_b64: str
    signature: int

    @property
    def signed_data(self) -> bytes:
        return f"{self.header_b64}.{self.payload_b64}".encode("ascii")

    @property
    def key_id(self) -> str | None:
        kid = self.header.get("kid")
        return str(kid) if kid is not None else None

    @property
    def payload_text(self) -> str:
        return base64url_decode(self.payload_b64.encode("ascii")).decode("utf-8")


@dataclass(frozen=True)
class JwtPrecompute:
    partial: PartialHash
    base64_decode_offset: int


def decode_token(token: str) -> DecodedToken:
    """
    Split and decode a compact JWT without checking its signature.

    Raises:
        InvalidTokenError: If the token is not a well-formed three-segment JWT
    """
    if not isinstance(token, str):
        raise InvalidTokenError(f"token must be str, got {type(token)}")

    segments = token.split(".")
    if len(segments) != 3 or not all(segments):
        raise InvalidTokenError("identity token must have three segments")
    header_b64, payload_b64, signature_b64 = segments

    try:
        header = jwt.get_unverified_header(token)
        payload = jwt.decode(token, options={"verify_signature": False})
        signature = base64url_decode(signature_b64.encode("ascii"))
    except (jwt.exceptions.PyJWTError, ValueError, UnicodeError) as exc:
        raise InvalidTokenError(f"failed to decode identity token: {exc}") from exc

    return DecodedToken(
        raw=token,
        header=header,
        payload=payload,
        header_b64=header_b64,
        payload_b64=payload_b64,
        signature=int.from_bytes(signature, "big"),
    )


def jwk_modulus(jwk: Mapping[str, Any]) -> int:
    """
    Extract the RSA modulus from a JSON Web Key.

    Raises:
        KeyResolutionError: If the JWK is not a usable RSA key
    """
    try:
        key = RSAAlgorithm.from_jwk(dict(jwk))
    except (jwt.exceptions.PyJWTError, ValueError, KeyError, TypeError) as exc:
        raise KeyResolutionError(f"invalid RSA JWK: {exc}") from exc

    if isinstance(key, rsa.RSAPrivateKey):
        key = key.public_key()
    if not isinstance(key, rsa.RSAPublicKey):
        raise KeyResolutionError("JWK is not an RSA public key")
    return key.public_numbers().n


def claim_offset(payload_text: str, claim: str) -> int | None:
    index = payload_text.find(f'"{claim}"')
    return index if index >= 0 else None


def precompute_selector(token: DecodedToken, claims: Iterable[str]) -> bytes:
    """
    Choose the selector that bounds SHA precomputation for ``claims``.

    The selector starts one base64 quad before the quad that holds the
    earliest of the claims present, so decoding from the resulting offset
    never skips the claim's first byte.
    """
    payload_text = token.payload_text
    offsets = [
        offset
        for offset in (claim_offset(payload_text, claim) for claim in claims)
        if offset is not None
    ]
    if not offsets:
        raise ConstraintError("none of the precompute claims are in the token")

    quad_start = (min(offsets) // _B64_GROUP) * _B64_QUAD
    position = len(token.header_b64) + 1 + max(0, quad_start - _B64_QUAD)
    return token.signed_data[position : position + PRECOMPUTE_SELECTOR_LENGTH]


def jwt_sha_precompute(
    token: DecodedToken,
    claims: Iterable[str],
    max_remaining_length: int = MAX_PARTIAL_DATA_LENGTH,
) -> JwtPrecompute:
    """
    Run partial SHA-256 over the signed data and derive the base64 offset.

    Raises:
        ConstraintError: If the boundary falls inside the header or the tail
            does not fit ``max_remaining_length``
    """
    selector = precompute_selector(token, claims)
    partial = partial_sha256(token.signed_data, selector, max_remaining_length)

    payload_chars_before = partial.cutoff - len(token.header_b64) - 1
    if payload_chars_before < 0:
        raise ConstraintError("precompute boundary falls inside the token header")

    return JwtPrecompute(
        partial=partial,
        base64_decode_offset=_B64_QUAD - (payload_chars_before % _B64_QUAD),
    )


def decode_payload_tail(remaining: bytes, base64_decode_offset: int) -> bytes:
    """
    Decode the payload fragment carried in a precompute tail.

    Mirrors what the circuit does: skip ``base64_decode_offset`` characters to
    realign on a quad, then decode up to the end of the payload.
    """
    tail = bytes(remaining[base64_decode_offset:])
    if not tail:
        return b""
    try:
        return base64url_decode(tail)
    except (ValueError, TypeError) as exc:
        raise ConstraintError(f"payload tail is not valid base64: {exc}") from exc


def extract_claim(fragment: bytes, claim: str) -> Any:
    """
    Extract a claim value from a decoded payload fragment.

    Raises:
        ConstraintError: If the claim is absent or its value is truncated
    """
    text = fragment.decode("utf-8", errors="replace")
    marker = f'"{claim}"'
    index = text.find(marker)
    if index < 0:
        raise ConstraintError(f"claim {claim!r} not present in signed data")

    rest = text[index + len(marker) :].lstrip()
    if not rest.startswith(":"):
        raise ConstraintError(f"claim {claim!r} is malformed")
    try:
        value, _ = json.JSONDecoder().raw_decode(rest[1:].lstrip())
    except json.JSONDecodeError as exc:
        raise ConstraintError(f"claim {claim!r} value is truncated") from exc
    return value
