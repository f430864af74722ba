"""
Main SDK class for ENSIP-25 attestations.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Union

from .attestation import build_text_record_key
from .contracts import (
    DEFAULT_IPFS_GATEWAY, DEFAULT_REGISTRIES, DEFAULT_RPC_URLS,
    ENS_REGISTRY_ABI, ENS_REGISTRY_ADDRESSES, RESOLVER_ABI, ens_chain_for,
)
from .interop_address import interop_address_matches
from .models import AgentId, ChainId, Registry, ResolveState
from .verifier import AttestationVerifier
from .web3_client import ClientRegistry

logger = logging.getLogger(__name__)


class SDK:
    """Main SDK class for ENSIP-25 attestations."""

    def __init__(
        self,
        registry: Optional[Union[str, Registry]] = None,  # label or Registry; defaults to the first default
        signer: Optional[Any] = None,  # private key or eth_account LocalAccount; optional for read-only use
        rpcOverrides: Optional[Dict[ChainId, str]] = None,
        registryOverrides: Optional[List[Registry]] = None,  # replaces the default registry list
        ipfsGateway: Optional[str] = None,
        session: Optional[Any] = None,  # shared aiohttp.ClientSession for agent-file fetches
    ):
        """Initialize the SDK."""
        self.signer = signer

        rpc_urls = DEFAULT_RPC_URLS.copy()
        if rpcOverrides:
            rpc_urls.update(rpcOverrides)
        self.clients = ClientRegistry(rpc_urls, signer=signer)

        self._registries: List[Registry] = list(registryOverrides or DEFAULT_REGISTRIES)
        if not self._registries:
            raise ValueError("At least one registry is required")
        self.ipfs_gateway = ipfsGateway or DEFAULT_IPFS_GATEWAY

        self._registry = self._resolve_registry(registry)
        self.verifier = AttestationVerifier(
            self.clients,
            self._registry,
            ipfs_gateway=self.ipfs_gateway,
            session=session,
        )

    def _resolve_registry(self, registry: Optional[Union[str, Registry]]) -> Registry:
        """Resolve a label or Registry to a registry entry."""
        if registry is None:
            registry = self._registries[0].label
        if isinstance(registry, Registry):
            if not interop_address_matches(registry.value, registry.chainId, registry.contractAddress):
                logger.warning(
                    f"Registry {registry.label} value {registry.value} does not encode "
                    f"chain {registry.chainId} / {registry.contractAddress}"
                )
            self._require_rpc(registry)
            return registry
        for entry in self._registries:
            if entry.label == registry:
                self._require_rpc(entry)
                return entry
        raise ValueError(f"Unknown registry: {registry}")

    def _require_rpc(self, registry: Registry) -> None:
        for chain_id in (registry.chainId, ens_chain_for(registry.chainId)):
            if not self.clients.supports(chain_id):
                raise ValueError(f"No RPC URL configured for chain {chain_id} (registry {registry.label})")

    @property
    def isReadOnly(self) -> bool:
        """Check if SDK is in read-only mode (no signer)."""
        return self.signer is None

    @property
    def registry(self) -> Registry:
        """Currently selected registry."""
        return self._registry

    def registries(self) -> List[Registry]:
        """Get the configured registries."""
        return list(self._registries)

    def set_registry(self, registry: Union[str, Registry]) -> None:
        """Switch registries; cancels any in-flight verification."""
        self.verifier.cancel()
        self._registry = self._resolve_registry(registry)
        self.verifier.registry = self._registry

    def textRecordKey(self, agentId: AgentId) -> str:
        """ENS text-record key attesting `agentId` in the selected registry."""
        return build_text_record_key(self._registry.value, str(agentId).strip())

    # Verification
    async def verifyAttestation(self, ensName: str, agentId: AgentId) -> Optional[ResolveState]:
        """Check both attestation directions. Returns None if superseded by a newer call."""
        return await self.verifier.resolve(ensName, str(agentId))

    def verifyAttestationSync(self, ensName: str, agentId: AgentId) -> Optional[ResolveState]:
        """Synchronous variant of `verifyAttestation`."""
        return self.verifier.resolve_sync(ensName, str(agentId))

    def cancelVerification(self) -> None:
        self.verifier.cancel()

    # ENS-side record management
    def writeAttestation(self, ensName: str, agentId: AgentId, value: str = "1") -> str:
        """
        Set the attestation text record on `ensName` via its resolver.

        Args:
            ensName: Name owned (or managed) by the signer.
            agentId: Agent to attest in the selected registry.
            value: Record value; an empty string clears the record.

        Returns:
            Transaction hash (0x-hex).
        """
        if self.isReadOnly:
            raise ValueError("A signer is required to write attestations")

        trimmed_name = ensName.strip()
        trimmed_agent_id = str(agentId).strip()
        if not trimmed_name or not trimmed_agent_id:
            raise ValueError("ENS name and Agent ID are required.")

        ens_chain_id = ens_chain_for(self._registry.chainId)
        registry_address = ENS_REGISTRY_ADDRESSES.get(ens_chain_id)
        if not registry_address:
            raise ValueError(f"No ENS registry for chain {ens_chain_id}")

        client = self.clients.get(ens_chain_id)
        node = client.namehash(trimmed_name)
        ens_registry = client.get_contract(registry_address, ENS_REGISTRY_ABI)
        resolver_address = client.call_contract(ens_registry, "resolver", node)
        if client.is_zero_address(resolver_address):
            raise ValueError(f"No resolver set for {trimmed_name}")

        key = self.textRecordKey(trimmed_agent_id)
        resolver = client.get_contract(resolver_address, RESOLVER_ABI)
        logger.debug(f"Setting {key}={value!r} on {trimmed_name} via resolver {resolver_address}")
        return client.transact_contract(resolver, "setText", node, key, value)

    def clearAttestation(self, ensName: str, agentId: AgentId) -> str:
        """Clear the attestation text record on `ensName`."""
        return self.writeAttestation(ensName, agentId, value="")
