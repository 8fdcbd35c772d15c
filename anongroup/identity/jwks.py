"""
Provider signing-key resolution from JWKS endpoints.

Keys are selected by ``kid`` and cached for a short TTL. An unknown ``kid``
triggers one refresh (providers rotate keys); if it is still unknown the
lookup fails closed with ``SigningKeyNotFoundError``.
"""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

import httpx

from ..membership.config import JWKS_CACHE_TTL_SECONDS, JWKS_HTTP_TIMEOUT_SECONDS
from ..membership.exceptions import KeyResolutionError, SigningKeyNotFoundError

logger = logging.getLogger(__name__)


def parse_key_set(body: Any) -> Dict[str, Dict[str, Any]]:
    """
    Index a JWKS document by ``kid``.

    Raises:
        KeyResolutionError: If the document is not a JWKS
    """
    if not isinstance(body, Mapping) or not isinstance(body.get("keys"), list):
        raise KeyResolutionError("JWKS document has no 'keys' list")
    keys: Dict[str, Dict[str, Any]] = {}
    for entry in body["keys"]:
        if not isinstance(entry, Mapping) or entry.get("kty") != "RSA":
            continue
        if entry.get("kid"):
            keys[str(entry["kid"])] = dict(entry)
    return keys


class JwksClient:
    """
    Async JWKS client with a TTL cache.

    Args:
        jwks_url: Provider key set endpoint
        transport: Optional httpx transport (tests use ``httpx.MockTransport``)
        cache_ttl: Seconds a fetched key set stays fresh
        timeout: HTTP timeout in seconds
    """

    def __init__(
        self,
        jwks_url: str,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        cache_ttl: float = JWKS_CACHE_TTL_SECONDS,
        timeout: float = JWKS_HTTP_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.jwks_url = jwks_url
        self._transport = transport
        self._cache_ttl = cache_ttl
        self._timeout = timeout
        self._clock = clock
        self._keys: Dict[str, Dict[str, Any]] = {}
        self._fetched_at: Optional[float] = None

    def _is_fresh(self) -> bool:
        return (
            self._fetched_at is not None
            and self._clock() - self._fetched_at < self._cache_ttl
        )

    async def refresh(self) -> Dict[str, Dict[str, Any]]:
        """
        Fetch the key set, replacing the cache.

        Raises:
            KeyResolutionError: On transport errors or malformed responses
        """
        try:
            async with httpx.AsyncClient(
                transport=self._transport, timeout=self._timeout
            ) as client:
                response = await client.get(self.jwks_url)
                response.raise_for_status()
                body = response.json()
        except httpx.HTTPError as exc:
            raise KeyResolutionError(
                f"failed to fetch JWKS from {self.jwks_url}: {exc}"
            ) from exc
        except ValueError as exc:
            raise KeyResolutionError(f"JWKS response is not JSON: {exc}") from exc

        self._keys = parse_key_set(body)
        self._fetched_at = self._clock()
        logger.debug("fetched %d keys from %s", len(self._keys), self.jwks_url)
        return dict(self._keys)

    async def get_signing_key(self, key_id: str) -> Dict[str, Any]:
        """
        Return the JWK for ``key_id``.

        Raises:
            SigningKeyNotFoundError: If no key matches after a refresh
            KeyResolutionError: If the key set cannot be fetched
        """
        if not key_id:
            raise SigningKeyNotFoundError("no key id supplied")

        if self._is_fresh() and key_id in self._keys:
            return dict(self._keys[key_id])

        await self.refresh()
        if key_id not in self._keys:
            logger.warning("signing key %s not found at %s", key_id, self.jwks_url)
            raise SigningKeyNotFoundError(f"signing key {key_id!r} not found")
        return dict(self._keys[key_id])


class StaticKeySet:
    """Fixed key set, e.g. loaded from a JWKS file for offline verification."""

    def __init__(self, body: Mapping[str, Any]) -> None:
        self._keys = parse_key_set(body)

    @classmethod
    def from_file(cls, path: str | Path) -> "StaticKeySet":
        with open(path, "r", encoding="utf-8") as fh:
            try:
                return cls(json.load(fh))
            except json.JSONDecodeError as exc:
                raise KeyResolutionError(f"{path} is not a JWKS file: {exc}") from exc

    async def get_signing_key(self, key_id: str) -> Dict[str, Any]:
        if key_id not in self._keys:
            raise SigningKeyNotFoundError(f"signing key {key_id!r} not found")
        return dict(self._keys[key_id])
