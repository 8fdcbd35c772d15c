"""Helpers to resolve circuit artifacts and verification keys by version tag."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Iterable

from ..types import CircuitVersion

CIRCUIT_FILENAME = "circuit.json"
VK_FILENAMES = ("vk.bin", "circuit-vkey.json")
_ENV_VAR_NAME = "ANONGROUP_CIRCUITS_DIR"


def resolve_circuit(
    version: CircuitVersion | str, base_dir: str | Path | None = None
) -> Path:
    version_dir = _version_dir(version, base_dir)
    return _first_existing(
        [version_dir / CIRCUIT_FILENAME], f"{version_dir.name} circuit"
    )


def resolve_vk(
    version: CircuitVersion | str, base_dir: str | Path | None = None
) -> Path:
    """
    Resolve the verification key, preferring the binary ``vk.bin`` over
    the JSON byte-array form.
    """
    version_dir = _version_dir(version, base_dir)
    return _first_existing(
        [version_dir / name for name in VK_FILENAMES],
        f"{version_dir.name} verification key",
    )


def load_circuit(path: str | Path) -> dict:
    with open(path, "r", encoding="utf-8") as fh:
        artifact = json.load(fh)
    if not isinstance(artifact, dict) or "bytecode" not in artifact:
        raise ValueError(f"{path} is not a compiled circuit artifact")
    return artifact


def load_verification_key(path: str | Path) -> bytes:
    """Read a verification key from ``vk.bin`` or a JSON byte array."""
    path = Path(path)
    if path.suffix == ".json":
        values = json.loads(path.read_text(encoding="utf-8"))
        if isinstance(values, dict):
            values = [values[k] for k in sorted(values, key=int)]
        return bytes(int(v) for v in values)
    return path.read_bytes()


def default_circuits_dir() -> Path:
    env_value = os.getenv(_ENV_VAR_NAME)
    if env_value:
        return Path(env_value)
    return _default_repo_root() / "circuits"


def _version_dir(version: CircuitVersion | str, base_dir: str | Path | None) -> Path:
    tag = CircuitVersion.parse(version).value
    root = Path(base_dir) if base_dir else default_circuits_dir()
    return root / tag


def _default_repo_root() -> Path:
    return Path(__file__).resolve().parents[3]


def _first_existing(candidates: Iterable[Path], label: str) -> Path:
    candidates = list(candidates)
    for path in candidates:
        if path.exists():
            return path
    raise FileNotFoundError(
        f"Unable to resolve {label}. Checked: {', '.join(str(p) for p in candidates)}"
    )
