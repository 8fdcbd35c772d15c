"""Versioned JWT membership circuits."""

from __future__ import annotations

from typing import Final

from ..types import CircuitVersion
from .base import MembershipCircuit
from .jwt_v020 import JwtCircuitV020
from .jwt_v030 import JwtCircuitV030

CIRCUITS: Final[dict[CircuitVersion, MembershipCircuit]] = {
    CircuitVersion.JWT_0_2_0: JwtCircuitV020(),
    CircuitVersion.JWT_0_3_0: JwtCircuitV030(),
}


def get_circuit(version: CircuitVersion | str) -> MembershipCircuit:
    """
    Return the adapter for a circuit version tag.

    Raises:
        CircuitVersionError: If the tag is unknown
    """
    return CIRCUITS[CircuitVersion.parse(version)]


__all__ = [
    "CIRCUITS",
    "get_circuit",
    "MembershipCircuit",
    "JwtCircuitV020",
    "JwtCircuitV030",
]
