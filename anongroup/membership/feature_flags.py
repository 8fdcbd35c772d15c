"""
Proving engine selection flags.

Resolution order: explicit ``prefer`` argument, in-memory override (tests),
``ANONGROUP_PROVING_ENGINE``, then the ``reference`` default.

WARNING: The reference engine binds proofs to their public inputs but is NOT
zero-knowledge and NOT sound. Select ``barretenberg`` outside development.
"""

from __future__ import annotations

import os
from typing import Final

ENGINE_CHOICES: Final[tuple[str, ...]] = ("reference", "barretenberg")
DEFAULT_ENGINE: Final[str] = "reference"
ENGINE_ENV_VAR: Final[str] = "ANONGROUP_PROVING_ENGINE"

_override: str | None = None


def _clean(value: object) -> str | None:
    """Lower-case and validate an engine name; blank means unset."""
    if value is None:
        return None
    name = value.strip().lower() if isinstance(value, str) else value
    if name == "":
        return None
    if name not in ENGINE_CHOICES:
        raise ValueError(
            f"Invalid engine type: {value!r}. "
            f"Valid options: {', '.join(ENGINE_CHOICES)}"
        )
    return name


def get_engine_type(prefer: str | None = None) -> str:
    """
    Raises:
        ValueError: If ``prefer`` or the environment names an unknown engine
    """
    for candidate in (_clean(prefer), _override):
        if candidate is not None:
            return candidate
    return _clean(os.getenv(ENGINE_ENV_VAR)) or DEFAULT_ENGINE


def set_engine_type(value: str | None) -> None:
    """Force an engine for the process; ``None`` or ``""`` clears it."""
    global _override
    _override = _clean(value)
