"""
⚠️ DRAFT — requires crypto review before production use

Ephemeral signing keys.

Each key is an RSA-2048 keypair (e = 65537) with a random salt and an
expiry. The modulus, salt and expiry are committed to in the OAuth nonce and
bound into the membership proof; the private key signs messages and never
leaves the secret store.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.asymmetric.utils import Prehashed

from ..membership.commitments import message_digest, random_salt
from ..membership.config import (
    EPHEMERAL_KEY_BITS,
    EPHEMERAL_KEY_TTL_SECONDS,
    RSA_PUBLIC_EXPONENT,
)
from ..membership.exceptions import CryptographicError, NotRegisteredError
from ..membership.interfaces import SecretStore
from ..membership.types import EphemeralKey, Message, SignedMessage
from .storage import MemorySecretStore

logger = logging.getLogger(__name__)

PRIVATE_KEY_NAME = "ephemeral_private_key"
PUBLIC_KEY_NAME = "ephemeral_public_key"
SALT_NAME = "ephemeral_salt"
EXPIRY_NAME = "ephemeral_expiry"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def sign_digest(private_key: rsa.RSAPrivateKey, digest: bytes) -> bytes:
    return private_key.sign(digest, padding.PKCS1v15(), Prehashed(hashes.SHA256()))


def public_key_from_modulus(modulus: int) -> rsa.RSAPublicKey:
    return rsa.RSAPublicNumbers(RSA_PUBLIC_EXPONENT, modulus).public_key()


def verify_signature(signed_message: SignedMessage) -> bool:
    """
    Check a message signature against the pubkey the message carries.

    Returns False for bad signatures and malformed keys or hex.
    """
    try:
        public_key = public_key_from_modulus(signed_message.ephemeral_pubkey)
        signature = bytes.fromhex(signed_message.signature)
        digest = message_digest(
            signed_message.group_id, signed_message.text, signed_message.timestamp
        )
        public_key.verify(
            signature, digest, padding.PKCS1v15(), Prehashed(hashes.SHA256())
        )
    except (InvalidSignature, ValueError, TypeError):
        return False
    return True


class EphemeralKeyManager:
    """
    Create, persist and use the current ephemeral key.

    Rotation is explicit: call :meth:`generate` again, which replaces the
    stored key.

    Example:
        >>> manager = EphemeralKeyManager(MemorySecretStore())
        >>> key = manager.generate()
        >>> signed = manager.sign(message)
        >>> EphemeralKeyManager.verify(signed)
        True
    """

    def __init__(
        self,
        store: Optional[SecretStore] = None,
        *,
        ttl_seconds: int = EPHEMERAL_KEY_TTL_SECONDS,
        clock: Callable[[], datetime] = _now,
    ) -> None:
        self.store: SecretStore = store if store is not None else MemorySecretStore()
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._key: Optional[EphemeralKey] = None

    def generate(self) -> EphemeralKey:
        """Create a new key, persist it and make it current."""
        private_key = rsa.generate_private_key(
            public_exponent=RSA_PUBLIC_EXPONENT, key_size=EPHEMERAL_KEY_BITS
        )
        key = EphemeralKey(
            public_key=private_key.public_key().public_numbers().n,
            salt=random_salt(),
            expiry=self._clock() + timedelta(seconds=self.ttl_seconds),
            private_key=private_key,
        )
        self._persist(key)
        self._key = key
        logger.info("generated ephemeral key expiring %s", key.expiry.isoformat())
        return key

    def _persist(self, key: EphemeralKey) -> None:
        pem = key.private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
        self.store.put(PRIVATE_KEY_NAME, pem.decode("ascii"))
        self.store.put(PUBLIC_KEY_NAME, str(key.public_key))
        self.store.put(SALT_NAME, str(key.salt))
        self.store.put(EXPIRY_NAME, str(key.expiry_seconds))

    def load(self) -> Optional[EphemeralKey]:
        """
        Return the current key, reading it from the store if needed.

        Raises:
            CryptographicError: If the stored key material is corrupt
        """
        if self._key is not None:
            return self._key

        pem = self.store.get(PRIVATE_KEY_NAME)
        if pem is None:
            return None
        try:
            private_key = serialization.load_pem_private_key(
                pem.encode("ascii"), password=None
            )
            key = EphemeralKey(
                public_key=int(self.store.get(PUBLIC_KEY_NAME) or ""),
                salt=int(self.store.get(SALT_NAME) or ""),
                expiry=int(self.store.get(EXPIRY_NAME) or ""),
                private_key=private_key,
            )
        except (ValueError, TypeError) as exc:
            raise CryptographicError(f"stored ephemeral key is corrupt: {exc}") from exc

        if private_key.public_key().public_numbers().n != key.public_key:
            raise CryptographicError("stored ephemeral key does not match its modulus")
        self._key = key
        return key

    @property
    def current(self) -> Optional[EphemeralKey]:
        return self.load()

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        key = self.load()
        return key is None or key.is_expired(now or self._clock())

    def sign(self, message: Message) -> SignedMessage:
        """
        Sign ``message`` with the current key.

        Raises:
            NotRegisteredError: If no key exists
        """
        key = self.load()
        if key is None or key.private_key is None:
            raise NotRegisteredError("no ephemeral key to sign with")

        digest = message_digest(message.group_id, message.text, message.timestamp)
        signature = sign_digest(key.private_key, digest)
        return SignedMessage(
            id=message.id,
            group_id=message.group_id,
            provider=message.provider,
            text=message.text,
            timestamp=message.timestamp,
            internal=message.internal,
            signature=signature.hex(),
            ephemeral_pubkey=key.public_key,
            ephemeral_pubkey_expiry=key.expiry,
        )

    @staticmethod
    def verify(signed_message: SignedMessage) -> bool:
        return verify_signature(signed_message)

    def clear(self) -> None:
        """Forget the current key and wipe the store."""
        self._key = None
        self.store.clear()
