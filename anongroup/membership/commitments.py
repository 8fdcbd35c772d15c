"""
⚠️ DRAFT — requires crypto review before production use

Commitments and digests binding ephemeral keys and messages.

This module provides:
1. ephemeral_pubkey_field - pack an RSA modulus into one field element
2. ephemeral_key_commitment - the OAuth nonce binding (pubkey, salt, expiry)
3. message_digest - canonical hash of a message for signing
4. legacy_nonce - message-content nonce used by jwt-0.2.0 proofs

All multi-field hashes use length-prefixed encoding (len || data) so field
boundaries cannot be shifted to produce collisions.
"""

from __future__ import annotations

import hashlib
import os
import secrets
from datetime import datetime, timezone

from .config import (
    COMMITMENT_DOMAIN_SEPARATOR,
    EPHEMERAL_PUBKEY_SHIFT,
    EPHEMERAL_SALT_BITS,
    FIELD_MODULUS,
    MESSAGE_DOMAIN_SEPARATOR,
)

# ============================================================================
# RANDOMNESS SOURCE (Fork-Safe)
# ============================================================================


class RandomnessSource:
    """
    Cryptographically secure randomness with fork detection.

    Prevents salt reuse if the process forks after initialization.
    """

    def __init__(self):
        self._pid = os.getpid()
        self._rng = secrets.SystemRandom()

    def _check_fork(self) -> None:
        if os.getpid() != self._pid:
            self.__init__()

    def random_below(self, max_value: int) -> int:
        """Random integer in [0, max_value)."""
        self._check_fork()
        return self._rng.randrange(0, max_value)

    def random_salt(self) -> int:
        """Random salt that always fits the circuit field."""
        return self.random_below(1 << EPHEMERAL_SALT_BITS)


_default_rng = RandomnessSource()


def random_salt() -> int:
    return _default_rng.random_salt()


# ============================================================================
# ENCODING HELPERS
# ============================================================================


def _length_prefixed(*parts: bytes) -> bytes:
    out = bytearray()
    for part in parts:
        out += len(part).to_bytes(4, "big")
        out += part
    return bytes(out)


def _int_bytes(value: int) -> bytes:
    if value < 0:
        raise ValueError("value must be non-negative")
    return value.to_bytes(max(1, (value.bit_length() + 7) // 8), "big")


def expiry_to_seconds(expiry: datetime | int) -> int:
    """
    Convert an expiry to unix seconds.

    Naive datetimes are rejected: expiry is always an absolute UTC instant.
    """
    if isinstance(expiry, bool):
        raise TypeError("expiry must be a datetime or int")
    if isinstance(expiry, int):
        return expiry
    if not isinstance(expiry, datetime):
        raise TypeError(f"expiry must be a datetime or int, got {type(expiry)}")
    if expiry.tzinfo is None:
        raise ValueError("expiry must be timezone-aware")
    return int(expiry.timestamp())


def seconds_to_expiry(seconds: int) -> datetime:
    return datetime.fromtimestamp(int(seconds), tz=timezone.utc)


# ============================================================================
# COMMITMENTS
# ============================================================================


def ephemeral_pubkey_field(ephemeral_pubkey: int) -> int:
    """
    Pack an ephemeral RSA modulus into a single field element.

    A 2048-bit modulus does not fit the ~254-bit field, so the modulus is
    hashed to 256 bits and shifted right by ``EPHEMERAL_PUBKEY_SHIFT``.

    Example:
        >>> ephemeral_pubkey_field(2**2047 + 1) < FIELD_MODULUS
        True
    """
    if not isinstance(ephemeral_pubkey, int) or ephemeral_pubkey <= 0:
        raise ValueError("ephemeral_pubkey must be a positive int")
    digest = hashlib.sha256(_int_bytes(ephemeral_pubkey)).digest()
    return int.from_bytes(digest, "big") >> EPHEMERAL_PUBKEY_SHIFT


def ephemeral_key_commitment(
    pubkey_field: int, salt: int, expiry: datetime | int
) -> int:
    """
    Commit to (pubkey field element, salt, expiry seconds).

    The decimal rendering of the result is the OAuth ``nonce``.

    Args:
        pubkey_field: Output of :func:`ephemeral_pubkey_field`
        salt: Secret salt, below the field modulus
        expiry: Expiry datetime (aware) or unix seconds

    Returns:
        Field element in [0, FIELD_MODULUS)

    Raises:
        ValueError: If an input is out of range
    """
    if not 0 <= pubkey_field < FIELD_MODULUS:
        raise ValueError("pubkey_field must be a field element")
    if not 0 <= salt < FIELD_MODULUS:
        raise ValueError("salt must be a field element")
    expiry_seconds = expiry_to_seconds(expiry)
    if expiry_seconds < 0:
        raise ValueError("expiry must be after the epoch")

    h = hashlib.sha256()
    h.update(
        _length_prefixed(
            COMMITMENT_DOMAIN_SEPARATOR,
            pubkey_field.to_bytes(32, "big"),
            salt.to_bytes(32, "big"),
            expiry_seconds.to_bytes(8, "big"),
        )
    )
    return int.from_bytes(h.digest(), "big") % FIELD_MODULUS


def nonce_for(ephemeral_pubkey: int, salt: int, expiry: datetime | int) -> str:
    """OAuth nonce string for an ephemeral key."""
    return str(
        ephemeral_key_commitment(
            ephemeral_pubkey_field(ephemeral_pubkey), salt, expiry
        )
    )


def message_digest(group_id: str, text: str, timestamp: int) -> bytes:
    """
    Canonical SHA-256 digest of a message's signed fields.

    Fields are hashed in the fixed order (group_id, text, timestamp), each
    length-prefixed, after a domain separator.
    """
    if isinstance(timestamp, bool) or not isinstance(timestamp, int):
        raise TypeError("timestamp must be int milliseconds")
    return hashlib.sha256(
        _length_prefixed(
            MESSAGE_DOMAIN_SEPARATOR,
            group_id.encode("utf-8"),
            text.encode("utf-8"),
            str(timestamp).encode("ascii"),
        )
    ).digest()


def legacy_nonce(text: str, timestamp: int) -> str:
    """32-character message-content nonce bound by jwt-0.2.0 proofs."""
    return hashlib.sha256(f"{text}{timestamp}".encode("utf-8")).hexdigest()[:32]
