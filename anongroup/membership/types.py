"""
⚠️ DRAFT — requires crypto review before production use

Common types for anonymous membership proofs and messages.

This module provides:
1. CircuitVersion - enum of supported circuit versions
2. EphemeralKey - short-lived signing key bound into a membership proof
3. AnonGroup / ProofBundle - provider-facing results
4. MembershipRecord - registered proof with CBOR and wire serialization
5. Message / SignedMessage / SignedMessageWithProof - message payloads

Wire dictionaries use the camelCase field names of the HTTP registry.
Ephemeral pubkeys travel as decimal strings and expiries as ISO 8601.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

import cbor2

from .commitments import (
    ephemeral_pubkey_field,
    expiry_to_seconds,
    nonce_for,
    seconds_to_expiry,
)
from .config import (
    LOGO_URL_TEMPLATE,
    MAX_PROOF_ARGS_BYTES,
    MAX_PROOF_BYTES,
    MAX_RECORD_BYTES,
    RECORD_VERSION,
)
from .exceptions import CircuitVersionError, CryptographicError

# ============================================================================
# CIRCUIT VERSION
# ============================================================================


class CircuitVersion(str, Enum):
    """
    Versions of the JWT membership circuit.

    - JWT_0_3_0: primary; binds an ephemeral pubkey and expiry via the nonce
    - JWT_0_2_0: legacy; binds a message-content hash via the nonce
    """

    JWT_0_2_0 = "jwt-0.2.0"
    JWT_0_3_0 = "jwt-0.3.0"

    @classmethod
    def parse(cls, value: "CircuitVersion | str") -> "CircuitVersion":
        """
        Resolve a version tag.

        Raises:
            CircuitVersionError: If the tag is unknown
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError as exc:
            raise CircuitVersionError(f"unknown circuit version: {value!r}") from exc


PRIMARY_CIRCUIT_VERSION = CircuitVersion.JWT_0_3_0


def _normalize_expiry(expiry: datetime | int) -> datetime:
    return seconds_to_expiry(expiry_to_seconds(expiry))


def _expiry_to_wire(expiry: datetime) -> str:
    return expiry.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _expiry_from_wire(value: Any) -> datetime:
    if not isinstance(value, str):
        raise ValueError(f"expiry is not an ISO-8601 string: {value!r}")
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return _normalize_expiry(parsed)


# ============================================================================
# EPHEMERAL KEY
# ============================================================================


@dataclass(frozen=True)
class EphemeralKey:
    """
    Short-lived RSA signing key bound into a membership proof.

    Attributes:
        public_key: RSA modulus (the exponent is always 65537)
        private_key: cryptography RSAPrivateKey; never serialized or printed
        salt: Secret salt below the field modulus
        expiry: Timezone-aware expiry, truncated to whole seconds
    """

    public_key: int
    salt: int
    expiry: datetime
    private_key: Any = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "expiry", _normalize_expiry(self.expiry))

    @property
    def pubkey_field(self) -> int:
        return ephemeral_pubkey_field(self.public_key)

    @property
    def expiry_seconds(self) -> int:
        return expiry_to_seconds(self.expiry)

    @property
    def nonce(self) -> str:
        """OAuth nonce committing to this key."""
        return nonce_for(self.public_key, self.salt, self.expiry)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now > self.expiry


# ============================================================================
# GROUPS AND PROOF BUNDLES
# ============================================================================


@dataclass(frozen=True)
class AnonGroup:
    """An organization as displayed to users."""

    id: str
    title: str
    logo_url: str

    @classmethod
    def from_group_id(cls, group_id: str, title: Optional[str] = None) -> "AnonGroup":
        return cls(
            id=group_id,
            title=title if title is not None else group_id,
            logo_url=LOGO_URL_TEMPLATE.format(group_id=group_id),
        )


@dataclass(frozen=True)
class ProofBundle:
    proof: bytes
    anon_group: AnonGroup
    proof_args: Dict[str, Any]
    circuit_version: CircuitVersion = PRIMARY_CIRCUIT_VERSION


# ============================================================================
# MEMBERSHIP RECORD
# ============================================================================


def _check_sizes(proof: bytes, proof_args: Dict[str, Any]) -> None:
    if len(proof) > MAX_PROOF_BYTES:
        raise ValueError(f"proof exceeds {MAX_PROOF_BYTES} bytes")
    if len(cbor2.dumps(proof_args)) > MAX_PROOF_ARGS_BYTES:
        raise ValueError(f"proof_args exceed {MAX_PROOF_ARGS_BYTES} bytes")


@dataclass(frozen=True)
class MembershipRecord:
    """
    A registered membership proof.

    Keyed by ``(ephemeral_pubkey, group_id)``. Registries only store records
    whose proof re-verified against the public inputs derived from the other
    fields.

    Serialization:
        - Primary: CBOR with version field
        - Wire: camelCase dict via to_wire()/from_wire()

    Example:
        >>> record = MembershipRecord(
        ...     provider="google-oauth",
        ...     ephemeral_pubkey=key.public_key,
        ...     ephemeral_pubkey_expiry=key.expiry,
        ...     group_id="acme.com",
        ...     proof=bundle.proof,
        ...     proof_args={"keyId": "k1"},
        ... )
        >>> restored = MembershipRecord.deserialize(record.serialize())
    """

    provider: str
    ephemeral_pubkey: int
    ephemeral_pubkey_expiry: datetime
    group_id: str
    proof: bytes
    proof_args: Dict[str, Any] = field(default_factory=dict)
    circuit_version: CircuitVersion = PRIMARY_CIRCUIT_VERSION

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "ephemeral_pubkey_expiry",
            _normalize_expiry(self.ephemeral_pubkey_expiry),
        )
        object.__setattr__(
            self, "circuit_version", CircuitVersion.parse(self.circuit_version)
        )
        object.__setattr__(self, "proof", bytes(self.proof))
        _check_sizes(self.proof, self.proof_args)

    @property
    def key(self) -> tuple[int, str]:
        return (self.ephemeral_pubkey, self.group_id)

    # ========================================================================
    # SERIALIZATION (CBOR)
    # ========================================================================

    def serialize(self) -> bytes:
        """
        Serialize the record to CBOR.

        Raises:
            CryptographicError: If serialization fails
        """
        try:
            data = {
                "v": RECORD_VERSION,
                "pr": self.provider,
                "pk": self.ephemeral_pubkey,
                "ex": expiry_to_seconds(self.ephemeral_pubkey_expiry),
                "g": self.group_id,
                "p": self.proof,
                "a": self.proof_args,
                "cv": self.circuit_version.value,
            }
            return cbor2.dumps(data)
        except Exception as e:
            raise CryptographicError(f"Failed to serialize record: {e}")

    @classmethod
    def deserialize(cls, data: bytes) -> "MembershipRecord":
        """
        Deserialize a record from CBOR bytes.

        Raises:
            ValueError: If the version is unsupported or data is invalid
            CryptographicError: If decoding fails
            CircuitVersionError: If the circuit version tag is unknown
        """
        if len(data) > MAX_RECORD_BYTES:
            raise ValueError(f"record exceeds {MAX_RECORD_BYTES} bytes")
        try:
            obj = cbor2.loads(data)
        except Exception as e:
            raise CryptographicError(f"Failed to deserialize record: {e}")

        if not isinstance(obj, dict):
            raise ValueError("Invalid record format: expected a map")

        version = obj.get("v", 1)
        if version != RECORD_VERSION:
            raise ValueError(
                f"Unsupported record version: {version} "
                f"(expected {RECORD_VERSION})"
            )

        required = ("pr", "pk", "ex", "g", "p", "cv")
        if any(name not in obj for name in required):
            raise ValueError("Invalid record format: missing required fields")

        return cls(
            provider=obj["pr"],
            ephemeral_pubkey=int(obj["pk"]),
            ephemeral_pubkey_expiry=seconds_to_expiry(obj["ex"]),
            group_id=obj["g"],
            proof=obj["p"],
            proof_args=dict(obj.get("a") or {}),
            circuit_version=CircuitVersion.parse(obj["cv"]),
        )

    def to_wire(self) -> Dict[str, Any]:
        """Registration request body."""
        return {
            "ephemeralPubkey": str(self.ephemeral_pubkey),
            "ephemeralPubkeyExpiry": _expiry_to_wire(self.ephemeral_pubkey_expiry),
            "groupId": self.group_id,
            "provider": self.provider,
            "proof": list(self.proof),
            "proofArgs": self.proof_args,
            "circuitVersion": self.circuit_version.value,
        }

    @classmethod
    def from_wire(cls, body: Dict[str, Any]) -> "MembershipRecord":
        try:
            return cls(
                provider=body["provider"],
                ephemeral_pubkey=int(body["ephemeralPubkey"]),
                ephemeral_pubkey_expiry=_expiry_from_wire(
                    body["ephemeralPubkeyExpiry"]
                ),
                group_id=body["groupId"],
                proof=bytes(body["proof"]),
                proof_args=dict(body.get("proofArgs") or {}),
                circuit_version=CircuitVersion.parse(body["circuitVersion"]),
            )
        except (KeyError, TypeError, CircuitVersionError) as exc:
            raise ValueError(f"Invalid membership body: {exc}") from exc


# ============================================================================
# MESSAGES
# ============================================================================


@dataclass(frozen=True, kw_only=True)
class Message:
    """
    A message posted to a group.

    ``timestamp`` is unix milliseconds.
    """

    id: str
    group_id: str
    provider: str
    text: str
    timestamp: int
    internal: bool = False

    def to_wire(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "groupId": self.group_id,
            "provider": self.provider,
            "text": self.text,
            "timestamp": self.timestamp,
            "internal": self.internal,
        }

    @staticmethod
    def _wire_fields(body: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "id": str(body["id"]),
            "group_id": body["groupId"],
            "provider": body["provider"],
            "text": body["text"],
            "timestamp": int(body["timestamp"]),
            "internal": bool(body.get("internal", False)),
        }


@dataclass(frozen=True, kw_only=True)
class SignedMessage(Message):
    signature: str
    ephemeral_pubkey: int
    ephemeral_pubkey_expiry: datetime

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "ephemeral_pubkey_expiry",
            _normalize_expiry(self.ephemeral_pubkey_expiry),
        )

    def to_wire(self) -> Dict[str, Any]:
        body = super().to_wire()
        body.update(
            {
                "signature": self.signature,
                "ephemeralPubkey": str(self.ephemeral_pubkey),
                "ephemeralPubkeyExpiry": _expiry_to_wire(self.ephemeral_pubkey_expiry),
            }
        )
        return body

    @staticmethod
    def _wire_fields(body: Dict[str, Any]) -> Dict[str, Any]:
        fields = Message._wire_fields(body)
        fields.update(
            signature=body["signature"],
            ephemeral_pubkey=int(body["ephemeralPubkey"]),
            ephemeral_pubkey_expiry=_expiry_from_wire(body["ephemeralPubkeyExpiry"]),
        )
        return fields

    @classmethod
    def from_wire(cls, body: Dict[str, Any]) -> "SignedMessage":
        try:
            return cls(**SignedMessage._wire_fields(body))
        except (KeyError, TypeError, CircuitVersionError) as exc:
            raise ValueError(f"Invalid message body: {exc}") from exc


@dataclass(frozen=True, kw_only=True)
class SignedMessageWithProof(SignedMessage):
    """A signed message joined with its sender's membership proof."""

    proof: bytes
    proof_args: Dict[str, Any] = field(default_factory=dict)
    circuit_version: CircuitVersion = PRIMARY_CIRCUIT_VERSION

    def __post_init__(self) -> None:
        super().__post_init__()
        object.__setattr__(
            self, "circuit_version", CircuitVersion.parse(self.circuit_version)
        )
        object.__setattr__(self, "proof", bytes(self.proof))

    @classmethod
    def join(
        cls, message: SignedMessage, record: MembershipRecord
    ) -> "SignedMessageWithProof":
        return cls(
            id=message.id,
            group_id=message.group_id,
            provider=message.provider,
            text=message.text,
            timestamp=message.timestamp,
            internal=message.internal,
            signature=message.signature,
            ephemeral_pubkey=message.ephemeral_pubkey,
            ephemeral_pubkey_expiry=message.ephemeral_pubkey_expiry,
            proof=record.proof,
            proof_args=record.proof_args,
            circuit_version=record.circuit_version,
        )

    def to_wire(self) -> Dict[str, Any]:
        body = super().to_wire()
        body.update(
            {
                "proof": list(self.proof),
                "proofArgs": self.proof_args,
                "circuitVersion": self.circuit_version.value,
            }
        )
        return body

    @classmethod
    def from_wire(cls, body: Dict[str, Any]) -> "SignedMessageWithProof":
        try:
            fields = SignedMessage._wire_fields(body)
            fields.update(
                proof=bytes(body["proof"]),
                proof_args=dict(body.get("proofArgs") or {}),
                circuit_version=CircuitVersion.parse(body["circuitVersion"]),
            )
            return cls(**fields)
        except (KeyError, TypeError, CircuitVersionError) as exc:
            raise ValueError(f"Invalid message body: {exc}") from exc
