"""Barretenberg proving engine driving the ``nargo`` and ``bb`` binaries."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Any, Hashable, Mapping, Optional, Sequence

import tomli_w

from ..circuits.assets import (
    default_circuits_dir,
    load_circuit,
    load_verification_key,
    resolve_circuit,
    resolve_vk,
)
from ..config import PROOF_TIMEOUT_SECONDS, VERIFY_TIMEOUT_SECONDS
from ..exceptions import ConstraintError, ProofGenerationError
from ..interfaces import CircuitSetup, ProvingEngine
from ..limbs import from_field_hex
from ..types import CircuitVersion

logger = logging.getLogger(__name__)

DEFAULT_NARGO_BIN = "nargo"
DEFAULT_BB_BIN = "bb"
SCHEME = "ultra_honk"


def _prover_value(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, str)):
        return str(value)
    if isinstance(value, Mapping):
        return {str(k): _prover_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_prover_value(v) for v in value]
    raise TypeError(f"unsupported prover input type: {type(value)}")


def to_prover_toml(inputs: Mapping[str, Any]) -> str:
    """
    Render a prover input map as a ``Prover.toml`` document.

    Integers are written as decimal strings since field elements exceed
    the TOML integer range.
    """
    return tomli_w.dumps(_prover_value(inputs))


def encode_public_inputs(public_inputs: Sequence[str]) -> bytes:
    """Concatenate public inputs as 32-byte big-endian field elements."""
    return b"".join(from_field_hex(e).to_bytes(32, "big") for e in public_inputs)


class BarretenbergEngine(ProvingEngine):
    """
    UltraHonk proofs via subprocess.

    Circuit packages live under ``<circuits_dir>/<version>/`` with
    ``Nargo.toml``, sources, ``circuit.json`` and a verification key.
    """

    _ENGINE_NAME = "barretenberg"

    def __init__(
        self,
        circuits_dir: Optional[str | Path] = None,
        *,
        nargo_bin: Optional[str] = None,
        bb_bin: Optional[str] = None,
        prove_timeout: float = PROOF_TIMEOUT_SECONDS,
        verify_timeout: float = VERIFY_TIMEOUT_SECONDS,
    ) -> None:
        self.circuits_dir = Path(circuits_dir) if circuits_dir else None
        self.nargo_bin = nargo_bin or os.getenv(
            "ANONGROUP_NARGO_BIN", DEFAULT_NARGO_BIN
        )
        self.bb_bin = bb_bin or os.getenv("ANONGROUP_BB_BIN", DEFAULT_BB_BIN)
        self.prove_timeout = prove_timeout
        self.verify_timeout = verify_timeout

    @property
    def engine_name(self) -> str:
        return self._ENGINE_NAME

    def setup_key(self) -> Hashable:
        root = self.circuits_dir or default_circuits_dir()
        return (self._ENGINE_NAME, str(root.resolve()))

    def load_setup(self, circuit_version: CircuitVersion) -> CircuitSetup:
        circuit_path = resolve_circuit(circuit_version, self.circuits_dir)
        vk_path = resolve_vk(circuit_version, self.circuits_dir)
        load_circuit(circuit_path)
        return CircuitSetup(
            circuit_version=circuit_version,
            circuit=circuit_path,
            verification_key=load_verification_key(vk_path),
        )

    def prove(self, setup: CircuitSetup, inputs: Mapping[str, Any]) -> bytes:
        circuit_path = Path(setup.circuit)
        program_dir = circuit_path.parent

        with tempfile.TemporaryDirectory() as tmp_dir:
            work_dir = Path(tmp_dir) / "program"
            shutil.copytree(program_dir, work_dir)
            (work_dir / "Prover.toml").write_text(
                to_prover_toml(inputs), encoding="utf-8"
            )

            execute = self._run(
                [self.nargo_bin, "execute", "witness", "--program-dir", str(work_dir)],
                timeout=self.prove_timeout,
            )
            if execute.returncode != 0:
                stderr = execute.stderr.strip() or "unknown witness error"
                raise ConstraintError(f"witness generation failed: {stderr}")

            out_path = Path(tmp_dir) / "out"
            result = self._run(
                [
                    self.bb_bin,
                    "prove",
                    "--scheme",
                    SCHEME,
                    "-b",
                    str(work_dir / circuit_path.name),
                    "-w",
                    str(work_dir / "target" / "witness.gz"),
                    "-o",
                    str(out_path),
                ],
                timeout=self.prove_timeout,
            )
            if result.returncode != 0:
                stderr = result.stderr.strip() or "unknown prover error"
                raise ProofGenerationError(f"prover failed: {stderr}")

            proof_path = out_path / "proof" if out_path.is_dir() else out_path
            return proof_path.read_bytes()

    def verify(
        self,
        proof: bytes,
        public_inputs: Sequence[str],
        verification_key: bytes,
    ) -> bool:
        with tempfile.TemporaryDirectory() as tmp_dir:
            tmp = Path(tmp_dir)
            (tmp / "proof").write_bytes(proof)
            (tmp / "public_inputs").write_bytes(encode_public_inputs(public_inputs))
            (tmp / "vk").write_bytes(verification_key)
            result = self._run(
                [
                    self.bb_bin,
                    "verify",
                    "--scheme",
                    SCHEME,
                    "-k",
                    str(tmp / "vk"),
                    "-p",
                    str(tmp / "proof"),
                    "-i",
                    str(tmp / "public_inputs"),
                ],
                timeout=self.verify_timeout,
            )
        if result.returncode != 0:
            logger.info("bb verify rejected proof: %s", result.stderr.strip())
        return result.returncode == 0

    @staticmethod
    def _run(command: list[str], *, timeout: float) -> subprocess.CompletedProcess:
        if shutil.which(command[0]) is None and not Path(command[0]).exists():
            raise FileNotFoundError(f"missing binary: {command[0]}")
        return subprocess.run(
            command,
            capture_output=True,
            text=True,
            check=False,
            timeout=timeout,
        )
