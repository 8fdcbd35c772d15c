"""Unit tests for identity token decoding and precompute selection."""

import pytest
from jwt.utils import base64url_encode

from anongroup.membership.config import GROUP_CLAIM_KEYS, NONCE_CLAIM_KEY
from anongroup.membership.exceptions import (
    ConstraintError,
    InvalidTokenError,
    KeyResolutionError,
)
from anongroup.membership.tokens import (
    decode_payload_tail,
    decode_token,
    extract_claim,
    jwk_modulus,
    jwt_sha_precompute,
    precompute_selector,
)

CLAIMS = GROUP_CLAIM_KEYS + (NONCE_CLAIM_KEY,)


def test_decode_token_splits_parts(issuer, ephemeral_key) -> None:
    token = decode_token(issuer.token_for(ephemeral_key))
    assert token.key_id == issuer.key_id
    assert token.payload["hd"] == "acme.com"
    assert token.payload["nonce"] == ephemeral_key.nonce
    assert token.signed_data == token.raw.rsplit(".", 1)[0].encode("ascii")
    assert 0 < token.signature < issuer.modulus


@pytest.mark.parametrize("raw", ["", "a.b", "a.b.c.d", "a..c", "!!.@@.##"])
def test_decode_token_rejects_malformed(raw: str) -> None:
    with pytest.raises(InvalidTokenError):
        decode_token(raw)


def test_decode_token_rejects_non_string() -> None:
    with pytest.raises(InvalidTokenError):
        decode_token(b"a.b.c")  # type: ignore[arg-type]


def test_jwk_modulus(issuer) -> None:
    assert jwk_modulus(issuer.jwk()) == issuer.modulus


def test_jwk_modulus_rejects_garbage() -> None:
    with pytest.raises(KeyResolutionError):
        jwk_modulus({"kty": "RSA", "e": "AQAB"})
    with pytest.raises(KeyResolutionError):
        jwk_modulus({"kty": "EC"})


def test_selector_lies_in_payload(issuer, ephemeral_key) -> None:
    token = decode_token(issuer.token_for(ephemeral_key))
    selector = precompute_selector(token, CLAIMS)
    assert len(selector) == 12
    index = token.signed_data.find(selector)
    assert index > len(token.header_b64)


def test_precompute_keeps_claims_visible(issuer, ephemeral_key) -> None:
    token = decode_token(issuer.token_for(ephemeral_key))
    precompute = jwt_sha_precompute(token, CLAIMS)
    assert 1 <= precompute.base64_decode_offset <= 4

    fragment = decode_payload_tail(
        precompute.partial.remaining_data, precompute.base64_decode_offset
    )
    assert extract_claim(fragment, "hd") == "acme.com"
    assert extract_claim(fragment, "nonce") == ephemeral_key.nonce


@pytest.mark.parametrize("claim", ["tid", "https://slack.com/team_id"])
def test_precompute_for_other_group_claims(issuer, ephemeral_key, claim) -> None:
    token = decode_token(
        issuer.token_for(ephemeral_key, group_claim=claim, group_id="T0123")
    )
    precompute = jwt_sha_precompute(token, (claim, NONCE_CLAIM_KEY))
    fragment = decode_payload_tail(
        precompute.partial.remaining_data, precompute.base64_decode_offset
    )
    assert extract_claim(fragment, claim) == "T0123"


def test_selector_requires_a_claim(issuer, ephemeral_key) -> None:
    token = decode_token(issuer.token_for(ephemeral_key, group_id=None))
    with pytest.raises(ConstraintError):
        precompute_selector(token, ("hd",))


def test_precompute_rejects_oversized_tail(issuer, ephemeral_key) -> None:
    token = decode_token(
        issuer.token_for(ephemeral_key, extra_claims={"blob": "x" * 900})
    )
    with pytest.raises(ConstraintError):
        jwt_sha_precompute(token, CLAIMS)


def test_decode_payload_tail_rejects_bad_base64() -> None:
    with pytest.raises(ConstraintError):
        decode_payload_tail(b"AAAAA", 0)


def test_extract_claim_values() -> None:
    fragment = b'xx","hd":"acme.com","n":5,"nonce":"123"}'
    assert extract_claim(fragment, "hd") == "acme.com"
    assert extract_claim(fragment, "n") == 5
    assert extract_claim(fragment, "nonce") == "123"


def test_extract_claim_missing_or_truncated() -> None:
    with pytest.raises(ConstraintError, match="not present"):
        extract_claim(b'{"a":1}', "hd")
    with pytest.raises(ConstraintError, match="truncated"):
        extract_claim(b'{"hd":"acme', "hd")


def test_decode_tail_from_offset() -> None:
    encoded = base64url_encode(b'{"hd":"acme.com"}')
    assert decode_payload_tail(b"xyz" + encoded, 3) == b'{"hd":"acme.com"}'
