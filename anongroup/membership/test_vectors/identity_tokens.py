# -*- coding: utf-8 -*-
"""
Deterministic-shape identity tokens signed by a locally generated provider key.

Used by tests and by ``anongroup`` CLI demos; never by production code paths.
"""
from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Dict, Mapping, Optional

import httpx
import jwt
from cryptography.hazmat.primitives.asymmetric import rsa
from jwt.algorithms import RSAAlgorithm

from ..types import EphemeralKey

DEFAULT_KEY_ID = "test-signing-key-1"
DEFAULT_ISSUER = "https://accounts.example.test"
DEFAULT_AUDIENCE = "anongroup-test-client"


@dataclass
class FakeIdentityIssuer:
    """An OAuth provider stand-in that signs RS256 identity tokens."""

    key_id: str
    private_key: rsa.RSAPrivateKey = field(repr=False)
    issuer: str = DEFAULT_ISSUER
    audience: str = DEFAULT_AUDIENCE

    @classmethod
    def generate(
        cls, key_id: str = DEFAULT_KEY_ID, **kwargs: Any
    ) -> "FakeIdentityIssuer":
        private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        return cls(key_id=key_id, private_key=private_key, **kwargs)

    @property
    def modulus(self) -> int:
        return self.private_key.public_key().public_numbers().n

    def jwk(self) -> Dict[str, Any]:
        data = json.loads(RSAAlgorithm.to_jwk(self.private_key.public_key()))
        data.update({"kid": self.key_id, "alg": "RS256", "use": "sig"})
        return data

    def jwks(self) -> Dict[str, Any]:
        return {"keys": [self.jwk()]}

    def mint(self, claims: Mapping[str, Any], *, key_id: Optional[str] = None) -> str:
        """Sign arbitrary claims with this issuer's key."""
        now = int(time.time())
        payload: Dict[str, Any] = {
            "iss": self.issuer,
            "aud": self.audience,
            "sub": "109876543210987654321",
        }
        payload.update(claims)
        payload.setdefault("iat", now)
        payload.setdefault("exp", now + 3600)
        return jwt.encode(
            payload,
            self.private_key,
            algorithm="RS256",
            headers={"kid": key_id or self.key_id},
        )

    def token_for(
        self,
        ephemeral_key: EphemeralKey,
        *,
        group_claim: str = "hd",
        group_id: Optional[str] = "acme.com",
        nonce: Optional[str] = None,
        extra_claims: Optional[Mapping[str, Any]] = None,
    ) -> str:
        """
        Mint a token as the provider would after sign-in with the key's nonce.

        ``group_id=None`` omits the organization claim (a personal account).
        """
        claims: Dict[str, Any] = {
            "email": "alice@acme.com",
            "email_verified": True,
        }
        if group_id is not None:
            claims[group_claim] = group_id
        claims["nonce"] = nonce if nonce is not None else ephemeral_key.nonce
        claims["name"] = "Alice Example"
        if extra_claims:
            claims.update(extra_claims)
        return self.mint(claims)

    def transport(self, jwks_url: str) -> httpx.MockTransport:
        """An httpx transport serving this issuer's key set at ``jwks_url``."""
        body = self.jwks()

        def handler(request: httpx.Request) -> httpx.Response:
            if str(request.url) == jwks_url:
                return httpx.Response(200, json=body)
            return httpx.Response(404, json={"error": "not found"})

        return httpx.MockTransport(handler)


@lru_cache(maxsize=None)
def default_issuer() -> FakeIdentityIssuer:
    """Process-wide issuer; RSA key generation is slow."""
    return FakeIdentityIssuer.generate()
