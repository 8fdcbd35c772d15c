"""
Reference proving engine.

Executes the circuit's constraints in Python and emits a proof that binds the
resulting public inputs to the circuit version.

⚠️ NOT ZERO-KNOWLEDGE AND NOT SOUND. Anyone who knows the public inputs can
compute a matching proof. Use for development and tests only.
"""

from __future__ import annotations

import hashlib
import hmac
from typing import Any, Mapping, Sequence

import cbor2

from ..circuits import get_circuit
from ..exceptions import ProofVerificationError
from ..interfaces import CircuitSetup, ProvingEngine
from ..types import CircuitVersion

_DOMAIN_SEPARATOR = b"ANONGROUP_V1_REFERENCE_PROOF"
_PROOF_VERSION = 1


def _binding(verification_key: bytes, public_inputs: Sequence[str]) -> bytes:
    parts = [_DOMAIN_SEPARATOR, verification_key]
    parts += [element.encode("ascii") for element in public_inputs]
    h = hashlib.sha256()
    for part in parts:
        h.update(len(part).to_bytes(4, "big"))
        h.update(part)
    return h.digest()


def _decode_map(data: bytes, label: str) -> dict:
    try:
        obj = cbor2.loads(data)
    except Exception as exc:
        raise ProofVerificationError(f"invalid {label}: {exc}") from exc
    if not isinstance(obj, dict):
        raise ProofVerificationError(f"invalid {label}: expected a map")
    return obj


class ReferenceEngine(ProvingEngine):
    """Python execution of the membership circuits."""

    _ENGINE_NAME = "reference"

    @property
    def engine_name(self) -> str:
        return self._ENGINE_NAME

    def load_setup(self, circuit_version: CircuitVersion) -> CircuitSetup:
        circuit = get_circuit(circuit_version)
        verification_key = cbor2.dumps(
            {
                "engine": self._ENGINE_NAME,
                "circuit": circuit.version.value,
                "n_public": circuit.public_input_count,
            }
        )
        return CircuitSetup(
            circuit_version=circuit.version,
            circuit=circuit,
            verification_key=verification_key,
        )

    def prove(self, setup: CircuitSetup, inputs: Mapping[str, Any]) -> bytes:
        public_inputs = setup.circuit.evaluate(inputs)
        return cbor2.dumps(
            {
                "v": _PROOF_VERSION,
                "c": setup.circuit_version.value,
                "b": _binding(setup.verification_key, public_inputs),
            }
        )

    def verify(
        self,
        proof: bytes,
        public_inputs: Sequence[str],
        verification_key: bytes,
    ) -> bool:
        vk = _decode_map(verification_key, "verification key")
        if vk.get("engine") != self._ENGINE_NAME:
            return False
        if len(public_inputs) != vk.get("n_public"):
            return False

        obj = _decode_map(proof, "proof")
        if obj.get("v") != _PROOF_VERSION or obj.get("c") != vk.get("circuit"):
            return False
        binding = obj.get("b")
        if not isinstance(binding, bytes):
            return False
        return hmac.compare_digest(binding, _binding(verification_key, public_inputs))
