"""Version-dispatching facade over a proving engine."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Sequence

import trio

from ..config import PROOF_TIMEOUT_SECONDS, VERIFY_TIMEOUT_SECONDS
from ..exceptions import CircuitVersionError, ProofGenerationError
from ..factory import get_proving_engine
from ..interfaces import ProvingEngine
from ..types import CircuitVersion
from . import get_circuit
from .base import MembershipCircuit
from .setup import get_setup

logger = logging.getLogger(__name__)


class CircuitBackend:
    """
    Prove and verify membership circuits by explicit version tag.

    Blocking engine calls run in a worker thread under a timeout, so the
    async entry points never stall the caller's event loop. Verification
    fails closed: any error or timeout is reported as an invalid proof.
    """

    def __init__(
        self,
        engine: Optional[ProvingEngine] = None,
        *,
        proof_timeout: float = PROOF_TIMEOUT_SECONDS,
        verify_timeout: float = VERIFY_TIMEOUT_SECONDS,
    ) -> None:
        self.engine = engine if engine is not None else get_proving_engine()
        self.proof_timeout = proof_timeout
        self.verify_timeout = verify_timeout

    @staticmethod
    def circuit(version: CircuitVersion | str) -> MembershipCircuit:
        return get_circuit(version)

    # ========================================================================
    # PROVING
    # ========================================================================

    def prove_sync(
        self, version: CircuitVersion | str, inputs: Mapping[str, Any]
    ) -> bytes:
        """
        Prove in the calling thread.

        Raises:
            CircuitVersionError: If the version tag is unknown
            ConstraintError: If the inputs do not satisfy the circuit
            ProofGenerationError: If the engine fails
        """
        try:
            setup = get_setup(self.engine, version)
            return self.engine.prove(setup, inputs)
        except (ProofGenerationError, CircuitVersionError):
            raise
        except Exception as exc:
            raise ProofGenerationError(
                f"{self.engine.engine_name} prover failed: {exc}"
            ) from exc

    async def prove(
        self, version: CircuitVersion | str, inputs: Mapping[str, Any]
    ) -> bytes:
        version = CircuitVersion.parse(version)
        logger.debug("proving %s with %s", version.value, self.engine.engine_name)
        try:
            with trio.fail_after(self.proof_timeout):
                return await trio.to_thread.run_sync(
                    self.prove_sync, version, inputs, abandon_on_cancel=True
                )
        except trio.TooSlowError as exc:
            raise ProofGenerationError(
                f"proof generation exceeded {self.proof_timeout}s"
            ) from exc

    # ========================================================================
    # VERIFICATION
    # ========================================================================

    def verify_sync(
        self,
        version: CircuitVersion | str,
        proof: bytes,
        public_inputs: Sequence[str],
    ) -> bool:
        """
        Verify in the calling thread. Never raises for untrusted data.

        Raises:
            CircuitVersionError: If the version tag is unknown
        """
        circuit = get_circuit(version)
        if len(public_inputs) != circuit.public_input_count:
            logger.info(
                "public input count %d does not match %s (%d)",
                len(public_inputs),
                circuit.version.value,
                circuit.public_input_count,
            )
            return False
        try:
            setup = get_setup(self.engine, circuit.version)
            return bool(
                self.engine.verify(
                    bytes(proof), list(public_inputs), setup.verification_key
                )
            )
        except Exception as exc:
            logger.info("proof verification failed: %s", exc)
            return False

    async def verify(
        self,
        version: CircuitVersion | str,
        proof: bytes,
        public_inputs: Sequence[str],
    ) -> bool:
        version = CircuitVersion.parse(version)
        with trio.move_on_after(self.verify_timeout):
            return await trio.to_thread.run_sync(
                self.verify_sync, version, proof, public_inputs, abandon_on_cancel=True
            )
        logger.warning("proof verification exceeded %ss", self.verify_timeout)
        return False


__all__ = ["CircuitBackend"]
