"""Unit tests for membership records and message types."""

from datetime import datetime, timedelta, timezone

import cbor2
import pytest

from anongroup.membership.config import MAX_PROOF_BYTES, RECORD_VERSION
from anongroup.membership.exceptions import CircuitVersionError, CryptographicError
from anongroup.membership.types import (
    AnonGroup,
    CircuitVersion,
    EphemeralKey,
    MembershipRecord,
    SignedMessage,
    SignedMessageWithProof,
)

EXPIRY = datetime(2030, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def _record(**overrides) -> MembershipRecord:
    fields = dict(
        provider="google-oauth",
        ephemeral_pubkey=(1 << 2047) + 3,
        ephemeral_pubkey_expiry=EXPIRY,
        group_id="acme.com",
        proof=b"\x01\x02\x03",
        proof_args={"keyId": "k1"},
    )
    fields.update(overrides)
    return MembershipRecord(**fields)


def _signed(**overrides) -> SignedMessage:
    fields = dict(
        id="m1",
        group_id="acme.com",
        provider="google-oauth",
        text="hello",
        timestamp=1_700_000_000_000,
        signature="ab" * 256,
        ephemeral_pubkey=(1 << 2047) + 3,
        ephemeral_pubkey_expiry=EXPIRY,
    )
    fields.update(overrides)
    return SignedMessage(**fields)


class TestCircuitVersion:
    def test_parse(self):
        assert CircuitVersion.parse("jwt-0.3.0") is CircuitVersion.JWT_0_3_0
        legacy = CircuitVersion.JWT_0_2_0
        assert CircuitVersion.parse(legacy) is legacy

    def test_unknown_version(self):
        with pytest.raises(CircuitVersionError):
            CircuitVersion.parse("jwt-9.9.9")


class TestEphemeralKey:
    def test_expiry_truncated_to_seconds(self):
        key = EphemeralKey(
            public_key=(1 << 2047) + 3,
            salt=5,
            expiry=EXPIRY + timedelta(microseconds=999),
        )
        assert key.expiry == EXPIRY
        assert key.expiry_seconds == int(EXPIRY.timestamp())

    def test_private_key_not_in_repr(self):
        key = EphemeralKey(
            public_key=(1 << 2047) + 3, salt=5, expiry=EXPIRY, private_key="SECRET"
        )
        assert "SECRET" not in repr(key)

    def test_is_expired(self):
        key = EphemeralKey(public_key=(1 << 2047) + 3, salt=5, expiry=EXPIRY)
        assert not key.is_expired(EXPIRY)
        assert key.is_expired(EXPIRY + timedelta(seconds=1))


def test_anon_group_from_id():
    group = AnonGroup.from_group_id("acme.com")
    assert group.id == group.title == "acme.com"
    assert "acme.com" in group.logo_url


class TestMembershipRecord:
    def test_cbor_round_trip(self):
        record = _record()
        restored = MembershipRecord.deserialize(record.serialize())
        assert restored == record
        assert restored.key == ((1 << 2047) + 3, "acme.com")

    def test_cbor_carries_version(self):
        data = cbor2.loads(_record().serialize())
        assert data["v"] == RECORD_VERSION
        assert data["cv"] == "jwt-0.3.0"

    def test_unsupported_version_rejected(self):
        data = cbor2.loads(_record().serialize())
        data["v"] = RECORD_VERSION + 1
        with pytest.raises(ValueError, match="Unsupported record version"):
            MembershipRecord.deserialize(cbor2.dumps(data))

    def test_missing_fields_rejected(self):
        data = cbor2.loads(_record().serialize())
        del data["g"]
        with pytest.raises(ValueError, match="missing required fields"):
            MembershipRecord.deserialize(cbor2.dumps(data))

    def test_garbage_rejected(self):
        with pytest.raises(CryptographicError):
            MembershipRecord.deserialize(b"\xff\xff\xff")

    def test_oversized_proof_rejected(self):
        with pytest.raises(ValueError):
            _record(proof=b"\x00" * (MAX_PROOF_BYTES + 1))

    def test_unknown_circuit_version_rejected(self):
        with pytest.raises(CircuitVersionError):
            _record(circuit_version="jwt-0.1.0")

    def test_wire_format(self):
        body = _record().to_wire()
        assert body["ephemeralPubkey"] == str((1 << 2047) + 3)
        assert body["ephemeralPubkeyExpiry"] == "2030-01-01T12:00:00Z"
        assert body["proof"] == [1, 2, 3]
        assert body["circuitVersion"] == "jwt-0.3.0"
        assert MembershipRecord.from_wire(body) == _record()

    def test_wire_missing_field(self):
        body = _record().to_wire()
        del body["groupId"]
        with pytest.raises(ValueError):
            MembershipRecord.from_wire(body)

    def test_wire_requires_circuit_version(self):
        body = _record().to_wire()
        del body["circuitVersion"]
        with pytest.raises(ValueError, match="circuitVersion"):
            MembershipRecord.from_wire(body)

    def test_wire_unknown_circuit_version(self):
        body = _record().to_wire()
        body["circuitVersion"] = "jwt-0.1.0"
        with pytest.raises(ValueError, match="unknown circuit version"):
            MembershipRecord.from_wire(body)

    @pytest.mark.parametrize("expiry", [1893456000, None, ["2030-01-01T12:00:00Z"]])
    def test_wire_non_string_expiry(self, expiry):
        body = _record().to_wire()
        body["ephemeralPubkeyExpiry"] = expiry
        with pytest.raises(ValueError):
            MembershipRecord.from_wire(body)


class TestMessages:
    def test_signed_message_wire_round_trip(self):
        message = _signed(internal=True)
        assert SignedMessage.from_wire(message.to_wire()) == message

    def test_join_with_record(self):
        joined = SignedMessageWithProof.join(_signed(), _record())
        assert joined.proof == b"\x01\x02\x03"
        assert joined.proof_args == {"keyId": "k1"}
        assert joined.circuit_version is CircuitVersion.JWT_0_3_0
        body = joined.to_wire()
        assert body["proofArgs"] == {"keyId": "k1"}
        assert SignedMessageWithProof.from_wire(body) == joined

    def test_from_wire_rejects_incomplete(self):
        body = _signed().to_wire()
        del body["signature"]
        with pytest.raises(ValueError):
            SignedMessage.from_wire(body)

    def test_message_with_proof_requires_circuit_version(self):
        body = SignedMessageWithProof.join(_signed(), _record()).to_wire()
        del body["circuitVersion"]
        with pytest.raises(ValueError, match="circuitVersion"):
            SignedMessageWithProof.from_wire(body)

    def test_message_non_string_expiry(self):
        body = SignedMessageWithProof.join(_signed(), _record()).to_wire()
        body["ephemeralPubkeyExpiry"] = 1893456000
        with pytest.raises(ValueError, match="ISO-8601"):
            SignedMessageWithProof.from_wire(body)
        with pytest.raises(ValueError, match="ISO-8601"):
            SignedMessage.from_wire(body)
