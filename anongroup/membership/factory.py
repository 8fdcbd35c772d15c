"""
Proving engine factory.

Engines are imported lazily by dotted path so that selecting the reference
engine never imports subprocess tooling and vice versa.
"""

from __future__ import annotations

import importlib
from typing import Any, Final

from .feature_flags import get_engine_type
from .interfaces import ProvingEngine

ENGINE_REGISTRY: Final[dict[str, str]] = {
    "reference": "anongroup.membership.adapters.reference_engine.ReferenceEngine",
    "barretenberg": "anongroup.membership.adapters.barretenberg.BarretenbergEngine",
}


def engine_class(name: str) -> type[ProvingEngine]:
    """
    Import the engine class registered as ``name``.

    Raises:
        ValueError: If ``name`` is not registered
        ImportError: If the module or class is missing
        TypeError: If the class is not a ProvingEngine
    """
    try:
        dotted = ENGINE_REGISTRY[name]
    except KeyError:
        raise ValueError(
            f"Invalid engine name: {name!r}. "
            f"Valid options: {', '.join(sorted(ENGINE_REGISTRY))}"
        ) from None

    module_name, _, attr = dotted.rpartition(".")
    try:
        module = importlib.import_module(module_name)
    except ModuleNotFoundError as exc:
        raise ImportError(
            f"Unable to import engine module {module_name!r} for {name!r}"
        ) from exc

    cls = getattr(module, attr, None)
    if cls is None:
        raise ImportError(f"Engine class {attr!r} not found in module {module_name!r}")
    if not (isinstance(cls, type) and issubclass(cls, ProvingEngine)):
        raise TypeError(f"Engine reference {dotted!r} does not implement ProvingEngine")
    return cls


def get_proving_engine(
    *,
    prefer: str | None = None,
    override: str | None = None,
    **engine_kwargs: Any,
) -> ProvingEngine:
    """
    Build the selected proving engine.

    ``override`` wins over everything (tests); otherwise the feature flags
    decide, with ``prefer`` taking precedence over the environment. Extra
    keyword arguments go to the engine constructor, e.g. ``circuits_dir``.
    """
    name = override or get_engine_type(prefer)
    return engine_class(name)(**engine_kwargs)
