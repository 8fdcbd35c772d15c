"""
⚠️ DRAFT — requires crypto review before production use

OAuth identity providers that prove organization membership.

A provider signs the user in with the nonce set to the ephemeral key
commitment, checks the returned token, resolves the provider signing key by
``kid`` and proves group membership with the primary circuit. Verification
re-resolves the key from ``proof_args["keyId"]`` and checks the proof against
public inputs rebuilt for the tagged circuit version.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Protocol, Sequence
from urllib.parse import urlencode

import trio

from ..membership.circuits import get_circuit
from ..membership.circuits.backend import CircuitBackend
from ..membership.config import (
    NONCE_CLAIM_KEY,
    SIGN_IN_TIMEOUT_SECONDS,
)
from ..membership.exceptions import (
    ConfigurationError,
    MembershipProtocolError,
    MissingGroupClaimError,
    NonceMismatchError,
    SignInError,
    SignInTimeoutError,
)
from ..membership.interfaces import IdentityProvider
from ..membership.tokens import decode_token, jwk_modulus
from ..membership.types import (
    PRIMARY_CIRCUIT_VERSION,
    AnonGroup,
    CircuitVersion,
    EphemeralKey,
    ProofBundle,
)
from .jwks import JwksClient

logger = logging.getLogger(__name__)

# Called with the nonce; returns the compact identity token issued by the
# provider after sign-in. Blocking; run in a worker thread.
TokenSource = Callable[[str], str]


class KeySource(Protocol):
    async def get_signing_key(self, key_id: str) -> Dict[str, Any]:
        ...


def client_id_env_var(provider_name: str) -> str:
    """``google-oauth`` -> ``ANONGROUP_GOOGLE_CLIENT_ID``."""
    prefix = provider_name.split("-", 1)[0].upper()
    return f"ANONGROUP_{prefix}_CLIENT_ID"


class OAuthIdentityProvider(IdentityProvider):
    """
    Base class for OpenID Connect providers with an organization claim.

    Subclasses set the class attributes below; the proving and verification
    flow is shared.

    Args:
        token_source: Sign-in callable returning an identity token for a nonce
        keys: Signing key source (defaults to a JWKS client for ``jwks_url``)
        backend: Circuit backend (created on first use when omitted)
        sign_in_timeout: Seconds allowed for ``token_source``
    """

    provider_name: str = ""
    group_claim: str = ""
    jwks_url: str = ""
    authorize_endpoint: str = ""
    scope: str = "openid email"
    slug: str = "domain"
    missing_group_message: str = "This account is not part of an organization."

    def __init__(
        self,
        token_source: Optional[TokenSource] = None,
        *,
        keys: Optional[KeySource] = None,
        backend: Optional[CircuitBackend] = None,
        sign_in_timeout: float = SIGN_IN_TIMEOUT_SECONDS,
    ) -> None:
        self.token_source = token_source
        self.keys: KeySource = keys if keys is not None else JwksClient(self.jwks_url)
        self._backend = backend
        self.sign_in_timeout = sign_in_timeout

    @property
    def backend(self) -> CircuitBackend:
        if self._backend is None:
            self._backend = CircuitBackend()
        return self._backend

    @property
    def precompute_claims(self) -> Sequence[str]:
        return (self.group_claim, NONCE_CLAIM_KEY)

    # ========================================================================
    # IDENTITY
    # ========================================================================

    def name(self) -> str:
        return self.provider_name

    def get_slug(self) -> str:
        return self.slug

    def get_anon_group(self, group_id: str) -> AnonGroup:
        return AnonGroup.from_group_id(group_id)

    def authorization_url(
        self,
        nonce: str,
        *,
        redirect_uri: str,
        state: Optional[str] = None,
        client_id: Optional[str] = None,
    ) -> str:
        """
        Build the provider authorization URL carrying ``nonce``.

        Raises:
            ConfigurationError: If no OAuth client id is configured
        """
        env_var = client_id_env_var(self.provider_name)
        client_id = client_id or os.getenv(env_var)
        if not client_id:
            raise ConfigurationError(f"{env_var} is not set")

        params = {
            "client_id": client_id,
            "response_type": "id_token",
            "redirect_uri": redirect_uri,
            "scope": self.scope,
            "nonce": nonce,
        }
        if state:
            params["state"] = state
        params.update(self._extra_authorization_params())
        return f"{self.authorize_endpoint}?{urlencode(params)}"

    def _extra_authorization_params(self) -> Dict[str, str]:
        return {}

    # ========================================================================
    # PROVING
    # ========================================================================

    async def sign_in(self, nonce: str) -> str:
        """
        Run the sign-in flow for ``nonce`` and return the identity token.

        Raises:
            SignInTimeoutError: If sign-in exceeds the timeout
            SignInError: If no token source is configured or it fails
        """
        if self.token_source is None:
            raise SignInError(f"{self.provider_name} has no sign-in token source")
        try:
            with trio.fail_after(self.sign_in_timeout):
                return await trio.to_thread.run_sync(
                    self.token_source, nonce, abandon_on_cancel=True
                )
        except trio.TooSlowError as exc:
            raise SignInTimeoutError(
                f"{self.provider_name} sign-in exceeded {self.sign_in_timeout}s"
            ) from exc
        except SignInError:
            raise
        except Exception as exc:
            raise SignInError(f"{self.provider_name} sign-in failed: {exc}") from exc

    def group_id_from_claims(self, payload: Dict[str, Any]) -> str:
        group_id = payload.get(self.group_claim)
        if not group_id or not isinstance(group_id, str):
            raise MissingGroupClaimError(self.missing_group_message)
        return group_id

    async def generate_proof(self, ephemeral_key: EphemeralKey) -> ProofBundle:
        """
        Sign in with the key commitment as nonce and prove group membership.

        Raises:
            NonceMismatchError: If the token nonce is not the key commitment
            MissingGroupClaimError: If the account has no organization
            SigningKeyNotFoundError: If the token's ``kid`` is unknown
            ProofGenerationError: If proving fails
        """
        nonce = ephemeral_key.nonce
        identity_token = await self.sign_in(nonce)
        token = decode_token(identity_token)

        if str(token.payload.get(NONCE_CLAIM_KEY)) != nonce:
            logger.warning("%s returned a token with a foreign nonce", self.name())
            raise NonceMismatchError(
                "identity token nonce does not match the ephemeral key commitment"
            )

        group_id = self.group_id_from_claims(token.payload)
        key_id = token.key_id or ""
        jwk = await self.keys.get_signing_key(key_id)

        circuit = get_circuit(PRIMARY_CIRCUIT_VERSION)
        inputs = circuit.build_prover_inputs(
            identity_token,
            jwk,
            ephemeral_key=ephemeral_key,
            group_id=group_id,
            precompute_claims=self.precompute_claims,
        )
        proof = await self.backend.prove(PRIMARY_CIRCUIT_VERSION, inputs)
        logger.info("%s membership proof generated", self.name())

        return ProofBundle(
            proof=proof,
            anon_group=self.get_anon_group(group_id),
            proof_args={"keyId": key_id},
            circuit_version=PRIMARY_CIRCUIT_VERSION,
        )

    # ========================================================================
    # VERIFICATION
    # ========================================================================

    async def verify_proof(
        self,
        proof: bytes,
        group_id: str,
        ephemeral_pubkey: int,
        ephemeral_pubkey_expiry: datetime,
        proof_args: Dict[str, Any],
        *,
        circuit_version: CircuitVersion | str,
        nonce: Optional[str] = None,
    ) -> bool:
        """
        Check a membership proof.

        Returns False for proofs that do not verify or whose public inputs
        cannot be rebuilt.

        Raises:
            SigningKeyNotFoundError: If ``proof_args["keyId"]`` is unknown
            CircuitVersionError: If the version tag is unknown
        """
        version = CircuitVersion.parse(circuit_version)
        circuit = get_circuit(version)

        key_id = str((proof_args or {}).get("keyId") or "")
        jwk = await self.keys.get_signing_key(key_id)
        modulus = jwk_modulus(jwk)

        try:
            public_inputs = circuit.build_verifier_public_inputs(
                group_id,
                modulus,
                ephemeral_pubkey=ephemeral_pubkey,
                ephemeral_pubkey_expiry=ephemeral_pubkey_expiry,
                nonce=nonce,
            )
        except (MembershipProtocolError, ValueError, TypeError) as exc:
            logger.info("cannot build public inputs: %s", exc)
            return False

        return await self.backend.verify(version, proof, public_inputs)
