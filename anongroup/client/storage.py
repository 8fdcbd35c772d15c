"""Secret stores for ephemeral key material."""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class MemorySecretStore:
    """Process-local store; contents vanish with the process."""

    def __init__(self) -> None:
        self._values: Dict[str, str] = {}
        self._lock = threading.Lock()

    def put(self, name: str, value: str) -> None:
        with self._lock:
            self._values[name] = value

    def get(self, name: str) -> Optional[str]:
        with self._lock:
            return self._values.get(name)

    def clear(self) -> None:
        with self._lock:
            self._values.clear()


class FileSecretStore:
    """
    JSON file store readable only by the owner (mode 0600).

    Every ``put`` rewrites the file atomically.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> Dict[str, str]:
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except FileNotFoundError:
            return {}
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} does not hold a secret map")
        return {str(k): str(v) for k, v in data.items()}

    def _write(self, values: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(values, fh, indent=2, sort_keys=True)
        os.replace(tmp_path, self.path)

    def put(self, name: str, value: str) -> None:
        with self._lock:
            values = self._read()
            values[name] = value
            self._write(values)

    def get(self, name: str) -> Optional[str]:
        with self._lock:
            return self._read().get(name)

    def clear(self) -> None:
        with self._lock:
            try:
                self.path.unlink()
            except FileNotFoundError:
                return
            logger.debug("cleared secret store %s", self.path)
