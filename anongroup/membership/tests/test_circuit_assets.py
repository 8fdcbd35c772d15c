"""Tests for circuit artifact resolution."""

import json
from pathlib import Path

import pytest

from anongroup.membership.circuits.assets import (
    default_circuits_dir,
    load_circuit,
    load_verification_key,
    resolve_circuit,
    resolve_vk,
)
from anongroup.membership.exceptions import CircuitVersionError


def _version_dir(root: Path, tag: str = "jwt-0.3.0") -> Path:
    path = root / tag
    path.mkdir(parents=True)
    return path


def test_resolve_circuit(tmp_path) -> None:
    version_dir = _version_dir(tmp_path)
    (version_dir / "circuit.json").write_text('{"bytecode": "H4sI"}')

    path = resolve_circuit("jwt-0.3.0", tmp_path)

    assert path == version_dir / "circuit.json"
    assert load_circuit(path) == {"bytecode": "H4sI"}


def test_missing_circuit_lists_candidates(tmp_path) -> None:
    _version_dir(tmp_path)
    with pytest.raises(FileNotFoundError, match="jwt-0.3.0 circuit"):
        resolve_circuit("jwt-0.3.0", tmp_path)


def test_unknown_version_tag(tmp_path) -> None:
    with pytest.raises(CircuitVersionError):
        resolve_circuit("jwt-0.1.0", tmp_path)


def test_vk_bin_preferred_over_json(tmp_path) -> None:
    version_dir = _version_dir(tmp_path, "jwt-0.2.0")
    (version_dir / "circuit-vkey.json").write_text("[1, 2, 3]")
    assert resolve_vk("jwt-0.2.0", tmp_path).name == "circuit-vkey.json"

    (version_dir / "vk.bin").write_bytes(b"\x00\x01")
    assert resolve_vk("jwt-0.2.0", tmp_path).name == "vk.bin"


def test_load_verification_key_forms(tmp_path) -> None:
    (tmp_path / "vk.bin").write_bytes(b"\xde\xad")
    (tmp_path / "list.json").write_text("[222, 173]")
    (tmp_path / "map.json").write_text(json.dumps({"1": 173, "0": 222}))

    assert load_verification_key(tmp_path / "vk.bin") == b"\xde\xad"
    assert load_verification_key(tmp_path / "list.json") == b"\xde\xad"
    assert load_verification_key(tmp_path / "map.json") == b"\xde\xad"


def test_load_circuit_rejects_non_artifact(tmp_path) -> None:
    path = tmp_path / "circuit.json"
    path.write_text('{"abi": {}}')
    with pytest.raises(ValueError, match="not a compiled circuit"):
        load_circuit(path)


def test_default_dir_from_environment(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("ANONGROUP_CIRCUITS_DIR", str(tmp_path))
    assert default_circuits_dir() == tmp_path

    monkeypatch.delenv("ANONGROUP_CIRCUITS_DIR")
    assert default_circuits_dir().name == "circuits"
