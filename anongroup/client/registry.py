"""
Membership registry and message store clients.

``RegistryClient`` talks to the HTTP registry. ``InMemoryRegistry`` implements
the same contract locally, re-verifying every proof before storing it; tests
and the CLI use it in place of a server.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional, Protocol

import httpx

from ..membership.exceptions import (
    MembershipProtocolError,
    MessageNotFoundError,
    MessageRejectedError,
    RegistrationRejectedError,
    RegistryError,
)
from ..membership.interfaces import IdentityProvider
from ..membership.types import MembershipRecord, SignedMessage, SignedMessageWithProof
from .keys import verify_signature

logger = logging.getLogger(__name__)

MEMBERSHIPS_PATH = "/api/memberships"
MESSAGES_PATH = "/api/messages"
DEFAULT_TIMEOUT = 30.0


class Registry(Protocol):
    async def register_membership(self, record: MembershipRecord) -> None:
        ...

    async def submit_message(self, message: SignedMessage) -> None:
        ...

    async def fetch_message(
        self, message_id: str, *, ephemeral_pubkey: Optional[int] = None
    ) -> SignedMessageWithProof:
        ...


def _error_text(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return response.text


# ============================================================================
# HTTP CLIENT
# ============================================================================


class RegistryClient:
    """
    Async client for the HTTP registry.

    Args:
        base_url: Registry origin, e.g. ``https://anon.example``
        transport: Optional httpx transport (tests use ``httpx.MockTransport``)
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        base_url: str,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._transport = transport
        self._timeout = timeout

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url, transport=self._transport, timeout=self._timeout
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Mapping[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        try:
            async with self._client() as client:
                return await client.request(method, path, json=json, headers=headers)
        except httpx.HTTPError as exc:
            raise RegistryError(f"{method} {path} failed: {exc}") from exc

    async def register_membership(self, record: MembershipRecord) -> None:
        """
        Raises:
            RegistrationRejectedError: If the registry refuses the proof
            RegistryError: On transport failures
        """
        response = await self._request("POST", MEMBERSHIPS_PATH, json=record.to_wire())
        if response.is_error:
            raise RegistrationRejectedError(
                f"registry rejected membership ({response.status_code}): "
                f"{_error_text(response)}"
            )
        logger.info("registered membership for group %s", record.group_id)

    async def submit_message(self, message: SignedMessage) -> None:
        """
        Raises:
            MessageRejectedError: If the message store refuses the message
            RegistryError: On transport failures
        """
        response = await self._request("POST", MESSAGES_PATH, json=message.to_wire())
        if response.is_error:
            raise MessageRejectedError(
                f"message store rejected message ({response.status_code}): "
                f"{_error_text(response)}"
            )

    async def fetch_message(
        self, message_id: str, *, ephemeral_pubkey: Optional[int] = None
    ) -> SignedMessageWithProof:
        """
        Fetch a message joined with its sender's proof.

        Internal messages require ``ephemeral_pubkey`` of a member of the
        same group.

        Raises:
            MessageNotFoundError: If the message is missing or not visible
            RegistryError: On transport failures or malformed bodies
        """
        headers = {}
        if ephemeral_pubkey is not None:
            headers["Authorization"] = f"Bearer {ephemeral_pubkey}"
        response = await self._request(
            "GET", f"{MESSAGES_PATH}/{message_id}", headers=headers
        )
        if response.status_code in (401, 403, 404):
            raise MessageNotFoundError(f"message {message_id} not found")
        if response.is_error:
            raise RegistryError(
                f"fetching message failed ({response.status_code}): "
                f"{_error_text(response)}"
            )
        try:
            return SignedMessageWithProof.from_wire(response.json())
        except ValueError as exc:
            raise RegistryError(f"malformed message body: {exc}") from exc


# ============================================================================
# IN-MEMORY REGISTRY
# ============================================================================


class InMemoryRegistry:
    """
    Local registry enforcing the server-side checks.

    Args:
        providers: Identity providers by name, used to re-verify proofs
        clock: Returns the current aware UTC datetime
    """

    def __init__(
        self,
        providers: Mapping[str, IdentityProvider],
        *,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.providers = dict(providers)
        self._clock = clock
        self._memberships: Dict[tuple[int, str], MembershipRecord] = {}
        self._messages: Dict[str, SignedMessage] = {}

    def membership(
        self, ephemeral_pubkey: int, group_id: str
    ) -> Optional[MembershipRecord]:
        return self._memberships.get((ephemeral_pubkey, group_id))

    def _can_read(self, ephemeral_pubkey: Optional[int], group_id: str) -> bool:
        if ephemeral_pubkey is None:
            return False
        record = self.membership(ephemeral_pubkey, group_id)
        return record is not None and self._clock() <= record.ephemeral_pubkey_expiry

    async def register_membership(self, record: MembershipRecord) -> None:
        provider = self.providers.get(record.provider)
        if provider is None:
            raise RegistrationRejectedError(f"unknown provider {record.provider!r}")
        if self._clock() > record.ephemeral_pubkey_expiry:
            raise RegistrationRejectedError("ephemeral key already expired")

        try:
            valid = await provider.verify_proof(
                record.proof,
                record.group_id,
                record.ephemeral_pubkey,
                record.ephemeral_pubkey_expiry,
                record.proof_args,
                circuit_version=record.circuit_version,
            )
        except MembershipProtocolError as exc:
            raise RegistrationRejectedError(
                f"proof verification failed: {exc}"
            ) from exc
        if not valid:
            logger.warning("rejected invalid proof for group %s", record.group_id)
            raise RegistrationRejectedError("invalid membership proof")

        self._memberships[record.key] = record
        logger.info("stored membership for group %s", record.group_id)

    async def submit_message(self, message: SignedMessage) -> None:
        record = self.membership(message.ephemeral_pubkey, message.group_id)
        if record is None:
            raise MessageRejectedError("sender has no membership in this group")
        if record.provider != message.provider:
            raise MessageRejectedError("provider does not match the membership")
        if message.ephemeral_pubkey_expiry != record.ephemeral_pubkey_expiry:
            raise MessageRejectedError("expiry does not match the membership")
        if self._clock() > record.ephemeral_pubkey_expiry:
            raise MessageRejectedError("ephemeral key expired")
        if not verify_signature(message):
            raise MessageRejectedError("invalid message signature")
        if message.id in self._messages:
            raise MessageRejectedError(f"duplicate message id {message.id}")
        self._messages[message.id] = message

    async def fetch_message(
        self, message_id: str, *, ephemeral_pubkey: Optional[int] = None
    ) -> SignedMessageWithProof:
        message = self._messages.get(message_id)
        if message is None:
            raise MessageNotFoundError(f"message {message_id} not found")

        if message.internal and not self._can_read(ephemeral_pubkey, message.group_id):
            raise MessageNotFoundError(f"message {message_id} not found")

        record = self._memberships[(message.ephemeral_pubkey, message.group_id)]
        return SignedMessageWithProof.join(message, record)
