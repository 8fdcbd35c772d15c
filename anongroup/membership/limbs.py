"""
Big-integer <-> fixed-width limb conversion for non-native field circuits.

RSA moduli and signatures are 2048-bit integers while the circuit field is
~254 bits wide, so every big integer crosses the circuit boundary as an
ordered list of small limbs (least significant first).
"""

from __future__ import annotations

from typing import Iterable, Sequence

from .config import (
    FIELD_HEX_CHARS,
    FIELD_MODULUS,
    LIMB_BITS,
    LIMB_COUNT,
    RSA_MODULUS_BITS,
)
from .exceptions import LimbOverflowError


def split_to_limbs(
    value: int, limb_bits: int = LIMB_BITS, limb_count: int = LIMB_COUNT
) -> list[int]:
    """
    Split a non-negative integer into little-endian limbs.

    Args:
        value: Integer to split
        limb_bits: Width of each limb in bits
        limb_count: Number of limbs to produce

    Returns:
        List of ``limb_count`` integers, limb 0 being the least significant

    Raises:
        TypeError: If value is not an int
        LimbOverflowError: If value is negative or does not fit the layout

    Example:
        >>> split_to_limbs(2**120 + 5, 120, 2)
        [5, 1]
    """
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"value must be int, got {type(value)}")
    if limb_bits <= 0 or limb_count <= 0:
        raise ValueError("limb_bits and limb_count must be positive")
    if value < 0:
        raise LimbOverflowError("value must be non-negative")
    if value >> (limb_bits * limb_count):
        raise LimbOverflowError(
            f"value needs {value.bit_length()} bits, "
            f"layout holds {limb_bits * limb_count}"
        )

    mask = (1 << limb_bits) - 1
    return [(value >> (i * limb_bits)) & mask for i in range(limb_count)]


def join_limbs(limbs: Sequence[int] | Iterable[int], limb_bits: int = LIMB_BITS) -> int:
    """Inverse of :func:`split_to_limbs`."""
    result = 0
    for i, limb in enumerate(limbs):
        limb = int(limb)
        if limb < 0 or limb >> limb_bits:
            raise LimbOverflowError(f"limb {i} out of range for {limb_bits} bits")
        result |= limb << (i * limb_bits)
    return result


def redc_parameter(
    modulus: int, extra_bits: int, modulus_bits: int = RSA_MODULUS_BITS
) -> int:
    """
    Compute the reduction parameter the circuit's bignum library expects.

    ``redc = 2^(2 * modulus_bits + extra_bits) // modulus``, exact integer
    division. Floating point must never be used here.
    """
    if modulus <= 0:
        raise ValueError("modulus must be positive")
    if extra_bits < 0:
        raise ValueError("extra_bits must be non-negative")
    return (1 << (2 * modulus_bits + extra_bits)) // modulus


def to_field_hex(value: int) -> str:
    """
    Render a field element as ``0x`` + 64 lowercase hex characters.

    Raises:
        LimbOverflowError: If value is negative or not reduced mod the field
    """
    if value < 0 or value >= FIELD_MODULUS:
        raise LimbOverflowError("value is not a canonical field element")
    return "0x" + format(value, f"0{FIELD_HEX_CHARS}x")


def from_field_hex(element: str) -> int:
    if not isinstance(element, str) or not element.startswith("0x"):
        raise ValueError("field element must be a 0x-prefixed hex string")
    if len(element) != FIELD_HEX_CHARS + 2:
        raise ValueError(f"field element must have {FIELD_HEX_CHARS} hex digits")
    return int(element[2:], 16)


def limbs_to_strings(limbs: Iterable[int]) -> list[str]:
    """Decimal string rendering used in prover input maps."""
    return [str(limb) for limb in limbs]
