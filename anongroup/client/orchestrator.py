"""
⚠️ DRAFT — requires crypto review before production use

Client-side membership lifecycle.

    UNREGISTERED -> REGISTERING -> REGISTERED -> EXPIRED

A key pair is generated, the provider proves that the signed-in account
belongs to an organization with the key committed in the nonce, and the
registry stores the proof after re-verifying it. Messages are then signed
with the ephemeral key until it expires.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Mapping, Optional

from ..identity import get_provider
from ..membership.commitments import expiry_to_seconds, legacy_nonce
from ..membership.exceptions import (
    CryptographicError,
    EphemeralKeyExpiredError,
    MembershipProtocolError,
    MembershipStateError,
    NotRegisteredError,
    UnknownProviderError,
)
from ..membership.interfaces import IdentityProvider
from ..membership.types import (
    CircuitVersion,
    MembershipRecord,
    Message,
    SignedMessage,
    SignedMessageWithProof,
)
from .keys import EphemeralKeyManager, verify_signature
from .registry import Registry

logger = logging.getLogger(__name__)

MEMBERSHIP_RECORD_NAME = "membership_record"


class MembershipState(str, Enum):
    UNREGISTERED = "unregistered"
    REGISTERING = "registering"
    REGISTERED = "registered"
    EXPIRED = "expired"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class MembershipOrchestrator:
    """
    Drive key generation, proving, registration and posting.

    Args:
        key_manager: Owner of the ephemeral key and its secret store
        registry: Membership registry and message store
        clock: Returns the current aware UTC datetime
    """

    def __init__(
        self,
        key_manager: EphemeralKeyManager,
        registry: Registry,
        *,
        clock: Callable[[], datetime] = _now,
    ) -> None:
        self.key_manager = key_manager
        self.registry = registry
        self._clock = clock
        self._registering = False
        self._record: Optional[MembershipRecord] = self._restore_record()

    def _restore_record(self) -> Optional[MembershipRecord]:
        stored = self.key_manager.store.get(MEMBERSHIP_RECORD_NAME)
        if stored is None:
            return None
        try:
            record = MembershipRecord.deserialize(bytes.fromhex(stored))
        except (ValueError, CryptographicError) as exc:
            logger.warning("discarding unreadable membership record: %s", exc)
            return None
        key = self.key_manager.load()
        if key is None or key.public_key != record.ephemeral_pubkey:
            logger.warning("stored membership does not match the ephemeral key")
            return None
        return record

    # ========================================================================
    # STATE
    # ========================================================================

    @property
    def state(self) -> MembershipState:
        if self._registering:
            return MembershipState.REGISTERING
        if self._record is None:
            return MembershipState.UNREGISTERED
        if self._clock() > self._record.ephemeral_pubkey_expiry:
            return MembershipState.EXPIRED
        return MembershipState.REGISTERED

    @property
    def membership(self) -> Optional[MembershipRecord]:
        return self._record

    # ========================================================================
    # REGISTRATION
    # ========================================================================

    async def generate_key_pair_and_register(
        self, provider: IdentityProvider
    ) -> MembershipRecord:
        """
        Generate a fresh key, prove membership with ``provider`` and register.

        On any failure the new key is discarded and the state returns to
        UNREGISTERED before the error propagates.

        Raises:
            MembershipStateError: If a registration is already running
            ProofGenerationError: If sign-in or proving fails
            RegistrationRejectedError: If the registry refuses the proof
        """
        if self._registering:
            raise MembershipStateError("registration already in progress")

        self._registering = True
        self._record = None
        try:
            key = self.key_manager.generate()
            bundle = await provider.generate_proof(key)
            record = MembershipRecord(
                provider=provider.name(),
                ephemeral_pubkey=key.public_key,
                ephemeral_pubkey_expiry=key.expiry,
                group_id=bundle.anon_group.id,
                proof=bundle.proof,
                proof_args=bundle.proof_args,
                circuit_version=bundle.circuit_version,
            )
            await self.registry.register_membership(record)
        except BaseException:
            logger.info("registration with %s failed, clearing key", provider.name())
            self.key_manager.clear()
            raise
        finally:
            self._registering = False

        self.key_manager.store.put(MEMBERSHIP_RECORD_NAME, record.serialize().hex())
        self._record = record
        logger.info("registered with group %s via %s", record.group_id, record.provider)
        return record

    def sign_out(self) -> None:
        """Drop the membership and the key."""
        self._record = None
        self.key_manager.clear()

    # ========================================================================
    # POSTING
    # ========================================================================

    def _require_registered(self) -> MembershipRecord:
        state = self.state
        if state is MembershipState.EXPIRED:
            raise EphemeralKeyExpiredError(
                "ephemeral key expired; register again to keep posting"
            )
        if state is not MembershipState.REGISTERED or self._record is None:
            raise NotRegisteredError(f"cannot post while {state.value}")
        return self._record

    async def post_message(
        self,
        text: str,
        *,
        internal: bool = False,
        message_id: Optional[str] = None,
    ) -> SignedMessage:
        """
        Sign ``text`` for the registered group and submit it.

        Raises:
            EphemeralKeyExpiredError: If the key expired
            NotRegisteredError: If there is no registered membership
            MessageRejectedError: If the message store refuses the message
        """
        record = self._require_registered()
        message = Message(
            id=message_id or str(uuid.uuid4()),
            group_id=record.group_id,
            provider=record.provider,
            text=text,
            timestamp=int(self._clock().timestamp() * 1000),
            internal=internal,
        )
        signed = self.key_manager.sign(message)
        await self.registry.submit_message(signed)
        return signed


# ============================================================================
# VERIFICATION
# ============================================================================


async def verify_message(
    message: SignedMessageWithProof,
    providers: Optional[Mapping[str, IdentityProvider]] = None,
) -> bool:
    """
    Check a message and its sender's membership proof.

    The signature must verify against the carried pubkey, the message must
    predate the key's expiry, and the proof must verify for the message's
    group under the tagged circuit version. Never raises for untrusted data.

    Args:
        message: Message joined with its membership proof
        providers: Providers by name (defaults to freshly built providers)
    """
    if not verify_signature(message):
        return False

    expiry_ms = expiry_to_seconds(message.ephemeral_pubkey_expiry) * 1000
    if message.timestamp > expiry_ms:
        return False

    try:
        if providers is None:
            provider = get_provider(message.provider)
        elif message.provider in providers:
            provider = providers[message.provider]
        else:
            raise UnknownProviderError(f"unknown provider {message.provider!r}")

        version = CircuitVersion.parse(message.circuit_version)
        nonce = None
        if version is CircuitVersion.JWT_0_2_0:
            nonce = legacy_nonce(message.text, message.timestamp)

        return await provider.verify_proof(
            message.proof,
            message.group_id,
            message.ephemeral_pubkey,
            message.ephemeral_pubkey_expiry,
            message.proof_args,
            circuit_version=version,
            nonce=nonce,
        )
    except (MembershipProtocolError, ValueError, TypeError) as exc:
        logger.info("message %s failed verification: %s", message.id, exc)
        return False
