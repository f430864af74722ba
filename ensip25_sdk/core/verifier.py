"""
Resolution of both attestation directions for an (ENS name, agent) pair.

The ENS text-record read and the agent-file pipeline
(`tokenURI` -> fetch -> extract -> check) run concurrently and are joined
before the combined status is computed. Each `resolve()` call supersedes the
previous one on the same verifier: the older request is cancelled and its
result is discarded.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import aiohttp
from ens.utils import normalize_name
from web3.exceptions import ContractLogicError

from .attestation import (
    DEFAULT_FETCH_TIMEOUT,
    build_text_record_key,
    check_agent_file,
    extract_ens_endpoint,
    fetch_agent_file,
    is_json_object,
)
from .cancellation import CancellationToken, FetchCancelledError
from .contracts import DEFAULT_IPFS_GATEWAY, IDENTITY_REGISTRY_ABI, ens_chain_for
from .models import (
    AgentId, AttestationResult, ErrorAttestation, NoAttestationState,
    NotSetAttestation, Registry, ResolvedState, ResolveErrorState, ResolveState,
)

logger = logging.getLogger(__name__)

AVATAR_TEXT_KEY = "avatar"


def describe_agent_file_error(exc: BaseException) -> str:
    """Map a failure of the agent-file pipeline to an operator-facing message."""
    message = str(exc)
    if isinstance(exc, ContractLogicError) or "reverted" in message:
        return "Agent not found in registry"
    if "not valid JSON" in message or "fetch failed" in message:
        return message
    return "Agent file check failed"


class AttestationVerifier:
    """Checks ENS -> Agent and Agent -> ENS for one registry."""

    def __init__(
        self,
        clients: Any,
        registry: Registry,
        ipfs_gateway: str = DEFAULT_IPFS_GATEWAY,
        session: Optional[aiohttp.ClientSession] = None,
        fetch_timeout: float = DEFAULT_FETCH_TIMEOUT,
    ):
        """
        Args:
            clients: Provider of per-chain clients (`ClientRegistry` or compatible);
                `clients.get(chain_id)` must return an object exposing
                `get_text`, `get_contract` and `call_contract`.
            registry: Registry whose agents are verified.
            ipfs_gateway: Gateway host for `ipfs://` agent URIs.
            session: Optional shared aiohttp session for agent-file fetches.
            fetch_timeout: Agent-file request timeout in seconds.
        """
        self.clients = clients
        self.registry = registry
        self.ipfs_gateway = ipfs_gateway
        self.session = session
        self.fetch_timeout = fetch_timeout
        self._current: Optional[CancellationToken] = None

    def cancel(self) -> None:
        """Abort the in-flight request, if any."""
        if self._current is not None:
            self._current.cancel()

    async def resolve(self, ens_name: str, agent_id: AgentId) -> Optional[ResolveState]:
        """
        Resolve both attestation directions.

        Returns None when this request was cancelled or superseded by a newer one.
        """
        self.cancel()
        token = CancellationToken()
        self._current = token

        trimmed_name = ens_name.strip()
        trimmed_agent_id = str(agent_id).strip()
        if not trimmed_name or not trimmed_agent_id:
            return ResolveErrorState(message="ENS name and Agent ID are required.")

        registry = self.registry
        text_record_key = build_text_record_key(registry.value, trimmed_agent_id)

        try:
            normalized = normalize_name(trimmed_name)
            ens_client = self.clients.get(ens_chain_for(registry.chainId))
        except Exception as e:
            logger.warning(f"Cannot resolve {trimmed_name}: {e}")
            return ResolveErrorState(message=str(e) or "Resolution failed")

        record, agent_file_result, avatar = await asyncio.gather(
            asyncio.to_thread(ens_client.get_text, normalized, text_record_key),
            self._check_agent_file(trimmed_agent_id, trimmed_name, token),
            self._fetch_avatar(ens_client, normalized),
            return_exceptions=True,
        )

        if token.cancelled:
            logger.debug(f"Discarding superseded resolution of {trimmed_name}")
            return None

        if isinstance(record, BaseException):
            logger.warning(f"Failed to read {text_record_key} for {normalized}: {record}")
            return ResolveErrorState(message=str(record) or "Resolution failed")

        if isinstance(agent_file_result, BaseException):
            agent_file_result = ErrorAttestation(message=describe_agent_file_error(agent_file_result))
        if isinstance(avatar, BaseException):
            avatar = None

        if record:
            return ResolvedState(
                textRecordKey=text_record_key,
                textRecordValue=record,
                registryAddress=registry.value,
                agentFileResult=agent_file_result,
                ensAvatar=avatar,
            )
        return NoAttestationState(
            textRecordKey=text_record_key,
            registryAddress=registry.value,
            agentFileResult=agent_file_result,
            ensAvatar=avatar,
        )

    def resolve_sync(self, ens_name: str, agent_id: AgentId) -> Optional[ResolveState]:
        """Synchronous wrapper around `resolve`."""
        return asyncio.run(self.resolve(ens_name, agent_id))

    async def _check_agent_file(
        self,
        agent_id: AgentId,
        ens_name: str,
        token: CancellationToken,
    ) -> Optional[AttestationResult]:
        try:
            registry_client = self.clients.get(self.registry.chainId)
            contract = registry_client.get_contract(self.registry.contractAddress, IDENTITY_REGISTRY_ABI)
            uri = await asyncio.to_thread(
                registry_client.call_contract, contract, "tokenURI", int(agent_id)
            )
            if token.cancelled:
                return None

            if not uri:
                return ErrorAttestation(message="No agent URI returned")

            json_text = await fetch_agent_file(
                uri,
                cancel_token=token,
                session=self.session,
                gateway=self.ipfs_gateway,
                timeout=self.fetch_timeout,
            )
            if token.cancelled:
                return None

            endpoint = extract_ens_endpoint(json_text)
            if endpoint is not None:
                return check_agent_file(endpoint, ens_name)
            # Only a JSON object without an ENS service is "not set"; anything else is an error.
            if is_json_object(json_text):
                return NotSetAttestation()
            raise ValueError("Agent file is not valid JSON")
        except FetchCancelledError:
            return None
        except Exception as e:
            if token.cancelled:
                return None
            logger.debug(f"Agent file check for agent {agent_id} failed: {e}")
            return ErrorAttestation(message=describe_agent_file_error(e))

    async def _fetch_avatar(self, ens_client: Any, name: str) -> Optional[str]:
        """Raw `avatar` text record (ENSIP-12 URI such as `eip155:1/erc721:...`), not resolved to an image URL."""
        try:
            avatar = await asyncio.to_thread(ens_client.get_text, name, AVATAR_TEXT_KEY)
        except Exception as e:
            logger.debug(f"No avatar for {name}: {e}")
            return None
        return avatar or None
