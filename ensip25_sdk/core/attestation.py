"""
ENSIP-25 attestation checks between an ENS name and an ERC-8004 agent.

ENS -> Agent: the name carries the text record
`agent-registration[<registry>][<agentId>]`.
Agent -> ENS: the agent's registration file lists a service
`{"name": "ENS", "endpoint": "<ens name>"}`.

Everything here is pure except `fetch_agent_file`, which may hit the network.
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
import re
from typing import Any, Optional
from urllib.parse import unquote

import aiohttp

from .cancellation import CancellationToken, FetchCancelledError
from .contracts import DEFAULT_IPFS_GATEWAY
from .models import (
    AttestationResult, InvalidAttestation, NotSetAttestation, ValidAttestation,
    VerificationStatus,
)

logger = logging.getLogger(__name__)

TEXT_RECORD_KEY_TEMPLATE = "agent-registration[{registry}][{agent_id}]"
ENS_SERVICE_NAME = "ENS"
DEFAULT_FETCH_TIMEOUT = 10  # seconds
MAX_JSON_DEPTH = 64

_BASE64_WHITESPACE = re.compile(r"[\t\n\f\r ]")


class AgentFileFetchError(RuntimeError):
    """The agent registration file could not be retrieved."""

    def __init__(self, status: Optional[int] = None, detail: Optional[str] = None):
        self.status = status
        if status is not None:
            message = f"Agent file fetch failed ({status})"
        else:
            message = f"Agent file fetch failed: {detail}"
        super().__init__(message)


def build_text_record_key(registry_value: str, agent_id: str) -> str:
    """Build the ENS text-record key for an agent attestation."""
    return TEXT_RECORD_KEY_TEMPLATE.format(registry=registry_value, agent_id=agent_id)


def _decode_data_uri(uri: str) -> str:
    comma = uri.find(",")
    if comma == -1:
        raise ValueError("Malformed data: URI (missing ',')")
    meta = uri[len("data:"):comma]
    payload = uri[comma + 1:]
    if "base64" in meta:
        # Same leniency as browser atob: ASCII whitespace and missing padding are accepted.
        payload = _BASE64_WHITESPACE.sub("", payload)
        payload += "=" * (-len(payload) % 4)
        return base64.b64decode(payload, validate=True).decode("utf-8")
    return unquote(payload, errors="strict")


async def _get_text(session: aiohttp.ClientSession, url: str, timeout: float) -> str:
    try:
        async with session.get(url, timeout=aiohttp.ClientTimeout(total=timeout)) as response:
            if not 200 <= response.status < 300:
                logger.warning(f"Failed to fetch {url}: HTTP {response.status}")
                raise AgentFileFetchError(status=response.status)
            return await response.text()
    except aiohttp.ClientError as e:
        raise AgentFileFetchError(detail=str(e)) from e


async def _fetch_text(
    url: str,
    cancel_token: Optional[CancellationToken],
    session: Optional[aiohttp.ClientSession],
    timeout: float,
) -> str:
    if cancel_token is not None:
        cancel_token.raise_if_cancelled()

    owns_session = session is None
    if owns_session:
        session = aiohttp.ClientSession()

    request = asyncio.ensure_future(_get_text(session, url, timeout))
    watcher = None
    try:
        if cancel_token is None:
            return await request

        watcher = asyncio.ensure_future(cancel_token.wait())
        await asyncio.wait({request, watcher}, return_when=asyncio.FIRST_COMPLETED)
        if not request.done():
            logger.debug(f"Fetch of {url} cancelled")
            raise FetchCancelledError(f"Fetch of {url} was cancelled")
        return request.result()
    finally:
        if watcher is not None:
            watcher.cancel()
        if not request.done():
            request.cancel()
            # Let the request unwind so the connection is released before returning.
            await asyncio.gather(request, return_exceptions=True)
        if owns_session:
            await session.close()


async def fetch_agent_file(
    uri: str,
    cancel_token: Optional[CancellationToken] = None,
    session: Optional[aiohttp.ClientSession] = None,
    gateway: str = DEFAULT_IPFS_GATEWAY,
    timeout: float = DEFAULT_FETCH_TIMEOUT,
) -> str:
    """
    Resolve an agent-file URI (data:, ipfs://, https://) to its raw text content.

    Args:
        uri: The agent URI as returned by the registry's `tokenURI`.
        cancel_token: Aborts the in-flight request when cancelled.
        session: Shared aiohttp session; a short-lived one is opened when omitted.
        gateway: Host of the IPFS HTTP gateway used for `ipfs://` URIs.
        timeout: Total request timeout in seconds.

    Returns:
        The file content as text.

    Raises:
        AgentFileFetchError: On non-2xx responses or transport failures.
        FetchCancelledError: When `cancel_token` fires before the response arrives.
        ValueError: On malformed `data:` payloads.
    """
    if uri.startswith("data:"):
        return _decode_data_uri(uri)

    if uri.startswith("ipfs://"):
        cid = uri[len("ipfs://"):]
        url = f"https://{gateway}/ipfs/{cid}"
    else:
        # https / http; unknown schemes are attempted as-is.
        url = uri

    logger.debug(f"Fetching agent file from {url}")
    return await _fetch_text(url, cancel_token, session, timeout)


def _exceeds_depth(text: str, limit: int) -> bool:
    depth = 0
    in_string = False
    escaped = False
    for char in text:
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        elif char in "[{":
            depth += 1
            if depth > limit:
                return True
        elif char in "]}":
            depth -= 1
    return False


def _parse_json(text: str) -> Any:
    """json.loads with a nesting bound; raises ValueError for too-deep documents."""
    if _exceeds_depth(text, MAX_JSON_DEPTH):
        raise ValueError(f"JSON nesting deeper than {MAX_JSON_DEPTH}")
    try:
        return json.loads(text)
    except RecursionError as e:
        raise ValueError("JSON nesting too deep") from e


def is_json_object(text: str) -> bool:
    """True when `text` parses (within the nesting bound) to a JSON object."""
    try:
        return isinstance(_parse_json(text), dict)
    except ValueError:
        return False


def extract_ens_endpoint(json_text: str) -> Optional[str]:
    """
    Extract the ENS service endpoint from an ERC-8004 registration file.

    The array is `services` and the entry name is exactly `"ENS"`.
    Returns None if the content is not JSON, has no `services` array,
    or has no `ENS` entry.
    """
    # Cheap rejection of HTML error pages and other non-JSON content.
    trimmed = json_text.lstrip()
    if not trimmed.startswith(("{", "[")):
        return None

    try:
        parsed = _parse_json(json_text)
    except ValueError:
        return None

    services = parsed.get("services") if isinstance(parsed, dict) else None
    if services is None:
        services = []
    if not isinstance(services, list):
        return None

    for service in services:
        if isinstance(service, dict) and service.get("name") == ENS_SERVICE_NAME:
            endpoint = service.get("endpoint")
            return endpoint if isinstance(endpoint, str) else None

    return None


def check_agent_file(endpoint: Optional[str], ens_name: str) -> AttestationResult:
    """Compare the agent-file ENS endpoint to the queried ENS name (case-insensitive)."""
    if endpoint is None:
        return NotSetAttestation()
    if endpoint.lower() == ens_name.lower():
        return ValidAttestation(endpoint=endpoint)
    return InvalidAttestation(endpoint=endpoint)


def get_verification_status(ens_to_agent: bool, agent_to_ens: bool) -> VerificationStatus:
    """Derive the verification-loop status from the two directional checks."""
    if ens_to_agent and agent_to_ens:
        return VerificationStatus(label="Closed — verified in both directions", closed=True)
    if ens_to_agent:
        return VerificationStatus(label="ENS → Agent only", closed=False)
    if agent_to_ens:
        return VerificationStatus(label="Agent → ENS only", closed=False)
    return VerificationStatus(label="Open — no verification in either direction", closed=False)
