"""
SHA-256 precomputation for in-circuit hashing of long signed data.

Hashing a whole JWT inside a circuit is expensive, so the prover hashes the
leading blocks outside the circuit and hands over only the intermediate
compression state plus the trailing bytes. The circuit finishes the hash.

``hashlib`` does not expose the intermediate state, so the compression
function is implemented here.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Sequence

from .config import MAX_PARTIAL_DATA_LENGTH, SHA256_BLOCK_BYTES
from .exceptions import ConstraintError

_MASK32 = 0xFFFFFFFF

_INITIAL_STATE: tuple[int, ...] = (
    0x6A09E667, 0xBB67AE85, 0x3C6EF372, 0xA54FF53A,
    0x510E527F, 0x9B05688C, 0x1F83D9AB, 0x5BE0CD19,
)

_ROUND_CONSTANTS: tuple[int, ...] = (
    0x428A2F98, 0x71374491, 0xB5C0FBCF, 0xE9B5DBA5, 0x3956C25B, 0x59F111F1,
    0x923F82A4, 0xAB1C5ED5, 0xD807AA98, 0x12835B01, 0x243185BE, 0x550C7DC3,
    0x72BE5D74, 0x80DEB1FE, 0x9BDC06A7, 0xC19BF174, 0xE49B69C1, 0xEFBE4786,
    0x0FC19DC6, 0x240CA1CC, 0x2DE92C6F, 0x4A7484AA, 0x5CB0A9DC, 0x76F988DA,
    0x983E5152, 0xA831C66D, 0xB00327C8, 0xBF597FC7, 0xC6E00BF3, 0xD5A79147,
    0x06CA6351, 0x14292967, 0x27B70A85, 0x2E1B2138, 0x4D2C6DFC, 0x53380D13,
    0x650A7354, 0x766A0ABB, 0x81C2C92E, 0x92722C85, 0xA2BFE8A1, 0xA81A664B,
    0xC24B8B70, 0xC76C51A3, 0xD192E819, 0xD6990624, 0xF40E3585, 0x106AA070,
    0x19A4C116, 0x1E376C08, 0x2748774C, 0x34B0BCB5, 0x391C0CB3, 0x4ED8AA4A,
    0x5B9CCA4F, 0x682E6FF3, 0x748F82EE, 0x78A5636F, 0x84C87814, 0x8CC70208,
    0x90BEFFFA, 0xA4506CEB, 0xBEF9A3F7, 0xC67178F2,
)


def _rotr(x: int, n: int) -> int:
    return ((x >> n) | (x << (32 - n))) & _MASK32


def _compress(state: Sequence[int], block: bytes) -> tuple[int, ...]:
    w = list(struct.unpack(">16I", block))
    for i in range(16, 64):
        s0 = _rotr(w[i - 15], 7) ^ _rotr(w[i - 15], 18) ^ (w[i - 15] >> 3)
        s1 = _rotr(w[i - 2], 17) ^ _rotr(w[i - 2], 19) ^ (w[i - 2] >> 10)
        w.append((w[i - 16] + s0 + w[i - 7] + s1) & _MASK32)

    a, b, c, d, e, f, g, h = state
    for i in range(64):
        s1 = _rotr(e, 6) ^ _rotr(e, 11) ^ _rotr(e, 25)
        ch = (e & f) ^ (~e & g)
        t1 = (h + s1 + ch + _ROUND_CONSTANTS[i] + w[i]) & _MASK32
        s0 = _rotr(a, 2) ^ _rotr(a, 13) ^ _rotr(a, 22)
        maj = (a & b) ^ (a & c) ^ (b & c)
        t2 = (s0 + maj) & _MASK32
        h, g, f, e = g, f, e, (d + t1) & _MASK32
        d, c, b, a = c, b, a, (t1 + t2) & _MASK32

    return tuple(
        (x + y) & _MASK32 for x, y in zip(state, (a, b, c, d, e, f, g, h))
    )


def _padding(total_length: int) -> bytes:
    zeros = (55 - total_length) % SHA256_BLOCK_BYTES
    return b"\x80" + b"\x00" * zeros + struct.pack(">Q", total_length * 8)


# ============================================================================
# PUBLIC API
# ============================================================================


@dataclass(frozen=True)
class PartialHash:
    """
    Intermediate SHA-256 state over a block-aligned prefix of some data.

    Attributes:
        state: Eight 32-bit words after compressing every block before the cutoff
        remaining: Bytes from the cutoff on, zero padded to the fixed capacity
        remaining_length: True length of the unpadded tail
        total_length: Length of the complete data
    """

    state: tuple[int, ...]
    remaining: bytes
    remaining_length: int
    total_length: int

    @property
    def cutoff(self) -> int:
        return self.total_length - self.remaining_length

    @property
    def remaining_data(self) -> bytes:
        return self.remaining[: self.remaining_length]

    def state_words(self) -> list[str]:
        """Decimal string rendering of the state, as prover inputs expect."""
        return [str(word) for word in self.state]


def partial_sha256(
    data: bytes,
    selector: bytes,
    max_remaining_length: int = MAX_PARTIAL_DATA_LENGTH,
) -> PartialHash:
    """
    Precompute SHA-256 over the whole blocks preceding ``selector``.

    Args:
        data: Full data to be hashed
        selector: Byte string whose first occurrence marks the precompute boundary
        max_remaining_length: Fixed capacity of the tail handed to the circuit

    Returns:
        PartialHash with the intermediate state and zero-padded tail

    Raises:
        ConstraintError: If the selector is absent or the tail does not fit

    Example:
        >>> data = b"a" * 100 + b"marker" + b"b" * 10
        >>> partial = partial_sha256(data, b"marker")
        >>> partial.cutoff
        64
    """
    if not isinstance(data, (bytes, bytearray)):
        raise TypeError(f"data must be bytes, got {type(data)}")
    if not selector:
        raise ValueError("selector cannot be empty")

    index = data.find(selector)
    if index < 0:
        raise ConstraintError("selector not found in data")

    cutoff = (index // SHA256_BLOCK_BYTES) * SHA256_BLOCK_BYTES
    remaining = bytes(data[cutoff:])
    if len(remaining) > max_remaining_length:
        raise ConstraintError(
            f"remaining data is {len(remaining)} bytes, "
            f"max is {max_remaining_length}"
        )

    state: tuple[int, ...] = _INITIAL_STATE
    for offset in range(0, cutoff, SHA256_BLOCK_BYTES):
        state = _compress(state, bytes(data[offset : offset + SHA256_BLOCK_BYTES]))

    return PartialHash(
        state=state,
        remaining=remaining + b"\x00" * (max_remaining_length - len(remaining)),
        remaining_length=len(remaining),
        total_length=len(data),
    )


def complete_sha256(
    state: Sequence[int], remaining: bytes, total_length: int
) -> bytes:
    """
    Finish a hash started by :func:`partial_sha256`.

    ``remaining`` must be the unpadded tail (``PartialHash.remaining_data``).
    Returns the 32-byte digest, equal to ``hashlib.sha256(data).digest()``.
    """
    if len(state) != 8:
        raise ValueError("state must contain 8 words")
    prefix_length = total_length - len(remaining)
    if prefix_length < 0 or prefix_length % SHA256_BLOCK_BYTES:
        raise ValueError("remaining data does not start on a block boundary")

    tail = bytes(remaining) + _padding(total_length)
    current = tuple(int(word) & _MASK32 for word in state)
    for offset in range(0, len(tail), SHA256_BLOCK_BYTES):
        current = _compress(current, tail[offset : offset + SHA256_BLOCK_BYTES])
    return struct.pack(">8I", *current)
