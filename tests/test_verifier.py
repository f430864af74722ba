"""
Tests for AttestationVerifier: both directions, error mapping and last-request-wins cancellation.
"""

import asyncio
import base64
import json
from typing import Dict, Optional, Tuple

import pytest
from web3.exceptions import ContractLogicError

from ensip25_sdk.core.attestation import build_text_record_key
from ensip25_sdk.core.models import (
    ErrorAttestation,
    InvalidAttestation,
    NoAttestationState,
    NotSetAttestation,
    Registry,
    ResolvedState,
    ResolveErrorState,
    ResolveStatus,
    ValidAttestation,
)
from ensip25_sdk.core.verifier import AttestationVerifier, describe_agent_file_error

from test_attestation import DummySession


def _data_uri(document) -> str:
    payload = json.dumps(document) if not isinstance(document, str) else document
    return "data:application/json;base64," + base64.b64encode(payload.encode()).decode()


class DummyChainClient:
    """Stands in for Web3Client: text records plus a `tokenURI` view."""

    def __init__(
        self,
        texts: Optional[Dict[Tuple[str, str], str]] = None,
        token_uri: Optional[str] = None,
        token_error: Optional[Exception] = None,
        text_error: Optional[Exception] = None,
    ):
        self.texts = texts or {}
        self.token_uri = token_uri
        self.token_error = token_error
        self.text_error = text_error
        self.text_requests = []
        self.calls = []

    def get_text(self, name: str, key: str):
        self.text_requests.append((name, key))
        if self.text_error and key != "avatar":
            raise self.text_error
        return self.texts.get((name, key))

    def get_contract(self, address, abi):
        return ("contract", address)

    def call_contract(self, contract, method, *args):
        self.calls.append((contract, method, args))
        if self.token_error:
            raise self.token_error
        return self.token_uri


class DummyClients:
    def __init__(self, client: DummyChainClient):
        self.client = client
        self.requested_chains = []

    def get(self, chain_id):
        self.requested_chains.append(chain_id)
        return self.client


REGISTRY = Registry(
    label="test",
    value="R1",
    contractAddress="0x8004A169FB4a3325136EB29fA0ceB6D2e539a432",
    chainId=1,
)


def _verifier(client: DummyChainClient, session=None) -> AttestationVerifier:
    return AttestationVerifier(DummyClients(client), REGISTRY, session=session)


class TestResolve:
    @pytest.mark.asyncio
    async def test_closed_loop(self):
        key = build_text_record_key("R1", "42")
        client = DummyChainClient(
            texts={("dao.eth", key): "dao.eth", ("dao.eth", "avatar"): "https://img.example/a.png"},
            token_uri=_data_uri({"services": [{"name": "ENS", "endpoint": "dao.eth"}]}),
        )
        state = await _verifier(client).resolve("dao.eth", "42")

        assert isinstance(state, ResolvedState)
        assert state.status is ResolveStatus.RESOLVED
        assert state.textRecordKey == "agent-registration[R1][42]"
        assert state.textRecordValue == "dao.eth"
        assert state.registryAddress == "R1"
        assert state.agentFileResult == ValidAttestation(endpoint="dao.eth")
        assert state.ensAvatar == "https://img.example/a.png"
        assert state.ens_to_agent is True
        assert state.agent_to_ens is True
        assert state.verification_status.closed is True
        assert state.verification_status.label == "Closed — verified in both directions"
        assert ("contract", REGISTRY.contractAddress) == client.calls[0][0]
        assert client.calls[0][1:] == ("tokenURI", (42,))

    @pytest.mark.asyncio
    async def test_inputs_are_trimmed(self):
        key = build_text_record_key("R1", "42")
        client = DummyChainClient(
            texts={("dao.eth", key): "1"},
            token_uri=_data_uri({"services": []}),
        )
        state = await _verifier(client).resolve("  dao.eth ", " 42 ")
        assert isinstance(state, ResolvedState)
        assert ("dao.eth", key) in client.text_requests

    @pytest.mark.asyncio
    async def test_ens_to_agent_only(self):
        key = build_text_record_key("R1", "42")
        client = DummyChainClient(
            texts={("dao.eth", key): "1"},
            token_uri=_data_uri({"services": [{"name": "ENS", "endpoint": "other.eth"}]}),
        )
        state = await _verifier(client).resolve("dao.eth", "42")
        assert isinstance(state, ResolvedState)
        assert state.agentFileResult == InvalidAttestation(endpoint="other.eth")
        assert state.verification_status.label == "ENS → Agent only"
        assert state.verification_status.closed is False

    @pytest.mark.asyncio
    async def test_agent_to_ens_only(self):
        client = DummyChainClient(
            token_uri=_data_uri({"services": [{"name": "ENS", "endpoint": "DAO.eth"}]}),
        )
        state = await _verifier(client).resolve("dao.eth", "42")
        assert isinstance(state, NoAttestationState)
        assert state.status is ResolveStatus.NO_ATTESTATION
        assert state.agentFileResult == ValidAttestation(endpoint="DAO.eth")
        assert state.ensAvatar is None
        assert state.verification_status.label == "Agent → ENS only"

    @pytest.mark.asyncio
    async def test_open_loop_when_no_ens_service(self):
        client = DummyChainClient(token_uri=_data_uri({"name": "agent", "services": []}))
        state = await _verifier(client).resolve("dao.eth", "42")
        assert isinstance(state, NoAttestationState)
        assert state.agentFileResult == NotSetAttestation()
        assert state.verification_status.label == "Open — no verification in either direction"
        assert state.to_dict()["agentFileResult"] == {"type": "not-set"}

    @pytest.mark.asyncio
    async def test_avatar_is_the_unresolved_text_record(self):
        avatar = "eip155:1/erc721:0xb47e3cd837dDF8e4c57F05d70Ab865de6e193BBB/0"
        client = DummyChainClient(texts={("dao.eth", "avatar"): avatar}, token_uri=_data_uri({}))
        state = await _verifier(client).resolve("dao.eth", "42")
        assert state.ensAvatar == avatar
        assert state.to_dict()["ensAvatar"] == avatar

    @pytest.mark.asyncio
    async def test_requires_name_and_agent(self):
        client = DummyChainClient()
        assert await _verifier(client).resolve("  ", "42") == ResolveErrorState(
            message="ENS name and Agent ID are required."
        )
        assert await _verifier(client).resolve("dao.eth", "") == ResolveErrorState(
            message="ENS name and Agent ID are required."
        )
        assert client.text_requests == []

    @pytest.mark.asyncio
    async def test_text_record_failure_is_error_state(self):
        client = DummyChainClient(text_error=ConnectionError("rpc down"), token_uri=_data_uri({}))
        state = await _verifier(client).resolve("dao.eth", "42")
        assert isinstance(state, ResolveErrorState)
        assert state.status is ResolveStatus.ERROR
        assert state.message == "rpc down"

    @pytest.mark.asyncio
    async def test_uses_ens_chain_for_testnet_registry(self):
        testnet = Registry(label="t", value="R2", contractAddress=REGISTRY.contractAddress, chainId=84532)
        clients = DummyClients(DummyChainClient(token_uri=_data_uri({})))
        await AttestationVerifier(clients, testnet).resolve("dao.eth", "1")
        assert 11155111 in clients.requested_chains
        assert 84532 in clients.requested_chains


class TestAgentFileErrors:
    @pytest.mark.asyncio
    async def test_revert_reports_agent_not_found(self):
        client = DummyChainClient(token_error=ContractLogicError("execution reverted: ERC721NonexistentToken"))
        state = await _verifier(client).resolve("dao.eth", "999999")
        assert state.agentFileResult == ErrorAttestation(message="Agent not found in registry")

    @pytest.mark.asyncio
    async def test_empty_uri(self):
        client = DummyChainClient(token_uri="")
        state = await _verifier(client).resolve("dao.eth", "42")
        assert state.agentFileResult == ErrorAttestation(message="No agent URI returned")

    @pytest.mark.asyncio
    async def test_non_json_file(self):
        client = DummyChainClient(token_uri="data:text/html,%3Chtml%3Eoops%3C%2Fhtml%3E")
        state = await _verifier(client).resolve("dao.eth", "42")
        assert state.agentFileResult == ErrorAttestation(message="Agent file is not valid JSON")

    @pytest.mark.asyncio
    async def test_truncated_json_file(self):
        client = DummyChainClient(token_uri=_data_uri('{"services": [{"name": "ENS"'))
        state = await _verifier(client).resolve("dao.eth", "42")
        assert state.agentFileResult == ErrorAttestation(message="Agent file is not valid JSON")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("document", ["[]", "null", "123", "\"text\"", "[{\"name\": \"ENS\"}]"])
    async def test_json_that_is_not_an_object(self, document):
        client = DummyChainClient(token_uri=_data_uri(document))
        state = await _verifier(client).resolve("dao.eth", "42")
        assert state.agentFileResult == ErrorAttestation(message="Agent file is not valid JSON")

    @pytest.mark.asyncio
    async def test_deeply_nested_file(self):
        client = DummyChainClient(token_uri=_data_uri("[" * 100000 + "]" * 100000))
        state = await _verifier(client).resolve("dao.eth", "42")
        assert state.agentFileResult == ErrorAttestation(message="Agent file is not valid JSON")

    @pytest.mark.asyncio
    async def test_http_failure_passes_status_through(self):
        client = DummyChainClient(token_uri="https://agents.example.com/42.json")
        session = DummySession(status=500)
        state = await _verifier(client, session=session).resolve("dao.eth", "42")
        assert state.agentFileResult == ErrorAttestation(message="Agent file fetch failed (500)")
        assert session.requested == ["https://agents.example.com/42.json"]

    @pytest.mark.asyncio
    async def test_ipfs_file_via_gateway(self):
        client = DummyChainClient(token_uri="ipfs://QmAgent")
        session = DummySession(body=json.dumps({"services": [{"name": "ENS", "endpoint": "dao.eth"}]}))
        verifier = AttestationVerifier(DummyClients(client), REGISTRY, ipfs_gateway="gw.example", session=session)
        state = await verifier.resolve("dao.eth", "42")
        assert state.agentFileResult == ValidAttestation(endpoint="dao.eth")
        assert session.requested == ["https://gw.example/ipfs/QmAgent"]

    @pytest.mark.asyncio
    async def test_non_numeric_agent_id(self):
        client = DummyChainClient()
        state = await _verifier(client).resolve("dao.eth", "abc")
        assert state.agentFileResult == ErrorAttestation(message="Agent file check failed")

    def test_describe_error(self):
        assert describe_agent_file_error(RuntimeError("call reverted")) == "Agent not found in registry"
        assert describe_agent_file_error(RuntimeError("Agent file fetch failed (404)")) == "Agent file fetch failed (404)"
        assert describe_agent_file_error(KeyError("x")) == "Agent file check failed"


class TestCancellation:
    @pytest.mark.asyncio
    async def test_newer_request_supersedes_older(self):
        client = DummyChainClient(
            token_uri="https://agents.example.com/42.json",
        )
        session = DummySession(
            body=json.dumps({"services": [{"name": "ENS", "endpoint": "dao.eth"}]}),
            delay=10,
        )
        verifier = _verifier(client, session=session)

        first = asyncio.ensure_future(verifier.resolve("dao.eth", "42"))
        while not session.requested:
            await asyncio.sleep(0.01)

        session.delay = 0
        second = await verifier.resolve("dao.eth", "42")

        assert await asyncio.wait_for(first, timeout=1) is None
        assert isinstance(second, NoAttestationState)
        assert second.agentFileResult == ValidAttestation(endpoint="dao.eth")

    @pytest.mark.asyncio
    async def test_cancel_discards_result(self):
        client = DummyChainClient(token_uri="https://agents.example.com/42.json")
        session = DummySession(body="{}", delay=10)
        verifier = _verifier(client, session=session)

        task = asyncio.ensure_future(verifier.resolve("dao.eth", "42"))
        while not session.requested:
            await asyncio.sleep(0.01)
        verifier.cancel()

        assert await asyncio.wait_for(task, timeout=1) is None


class TestResolveSync:
    def test_runs_event_loop(self):
        client = DummyChainClient(token_uri=_data_uri({"services": [{"name": "ENS", "endpoint": "dao.eth"}]}))
        state = _verifier(client).resolve_sync("dao.eth", "42")
        assert isinstance(state, NoAttestationState)
        assert state.agent_to_ens is True
