"""
Process-wide cache of engine setup data.

Loading a circuit artifact and verification key is slow, so each
(engine artifact source, circuit version) pair is loaded at most once
per process. Concurrent first callers block on the same lock and share one load.
"""

from __future__ import annotations

import logging
import threading
from typing import Hashable

from ..interfaces import CircuitSetup, ProvingEngine
from ..types import CircuitVersion

logger = logging.getLogger(__name__)

_cache: dict[tuple[Hashable, CircuitVersion], CircuitSetup] = {}
_lock = threading.Lock()


def get_setup(engine: ProvingEngine, version: CircuitVersion | str) -> CircuitSetup:
    """
    Return memoized setup data for ``engine`` and ``version``.

    Raises:
        CircuitVersionError: If the version tag is unknown
    """
    version = CircuitVersion.parse(version)
    key = (engine.setup_key(), version)

    setup = _cache.get(key)
    if setup is not None:
        return setup

    with _lock:
        setup = _cache.get(key)
        if setup is None:
            logger.info("loading %s setup for %s", engine.engine_name, version.value)
            setup = engine.load_setup(version)
            _cache[key] = setup
    return setup


def clear_setup_cache() -> None:
    """Drop all memoized setup data (testing only)."""
    with _lock:
        _cache.clear()
