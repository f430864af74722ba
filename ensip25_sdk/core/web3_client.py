"""
Web3 integration layer: contract calls, ENS text records and signed writes.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ens import ENS
from ens.exceptions import ResolverNotFound
from eth_account import Account
from eth_account.signers.local import LocalAccount
from eth_utils import to_checksum_address
from web3 import Web3

from .models import Address, ChainId

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class Web3Client:
    """Thin wrapper around a `Web3` instance for one chain."""

    def __init__(
        self,
        rpc_url: str,
        private_key: Optional[str] = None,
        account: Optional[LocalAccount] = None,
        chain_id: Optional[ChainId] = None,
    ):
        self.rpc_url = rpc_url
        self.w3 = Web3(Web3.HTTPProvider(rpc_url))
        self._chain_id = chain_id

        if account is not None:
            self.account = account
        elif private_key:
            self.account = Account.from_key(private_key)
        else:
            self.account = None

    @property
    def chain_id(self) -> ChainId:
        if self._chain_id is None:
            self._chain_id = self.w3.eth.chain_id
        return self._chain_id

    def is_zero_address(self, address: Optional[str]) -> bool:
        return not address or address.lower() == ZERO_ADDRESS

    def get_contract(self, address: Address, abi: List[Dict[str, Any]]):
        return self.w3.eth.contract(address=to_checksum_address(address), abi=abi)

    def call_contract(self, contract, method: str, *args) -> Any:
        """Call a view function and return its decoded output."""
        return getattr(contract.functions, method)(*args).call()

    def transact_contract(self, contract, method: str, *args) -> str:
        """Sign and send a state-changing call; returns the transaction hash (0x-hex)."""
        if self.account is None:
            raise ValueError("No signer configured; cannot send transactions")

        sender = self.account.address
        tx = getattr(contract.functions, method)(*args).build_transaction({
            "from": sender,
            "nonce": self.w3.eth.get_transaction_count(sender),
            "chainId": self.chain_id,
        })
        signed = self.account.sign_transaction(tx)
        tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        logger.debug(f"Sent {method} transaction {tx_hash.hex()} from {sender}")
        return Web3.to_hex(tx_hash)

    def get_text(self, name: str, key: str) -> Optional[str]:
        """Read an ENS text record; None when the name has no resolver."""
        try:
            return self.w3.ens.get_text(name, key)
        except ResolverNotFound:
            logger.debug(f"No resolver for {name}; text record {key} unavailable")
            return None

    @staticmethod
    def namehash(name: str) -> bytes:
        return ENS.namehash(name)


class ClientRegistry:
    """Owns one `Web3Client` per chain, created on first use.

    The registry is held by whoever drives verification (typically the SDK
    facade) and can be cleared or replaced when RPC configuration changes.
    """

    def __init__(
        self,
        rpc_urls: Dict[ChainId, str],
        signer: Optional[Any] = None,
    ):
        self.rpc_urls = dict(rpc_urls)
        self.signer = signer
        self._clients: Dict[ChainId, Web3Client] = {}

    def supports(self, chain_id: ChainId) -> bool:
        return chain_id in self.rpc_urls

    def get(self, chain_id: ChainId) -> Web3Client:
        client = self._clients.get(chain_id)
        if client is not None:
            return client

        rpc_url = self.rpc_urls.get(chain_id)
        if not rpc_url:
            raise ValueError(f"Unsupported chainId: {chain_id}")

        if isinstance(self.signer, str):
            client = Web3Client(rpc_url, private_key=self.signer, chain_id=chain_id)
        elif self.signer is not None:
            client = Web3Client(rpc_url, account=self.signer, chain_id=chain_id)
        else:
            client = Web3Client(rpc_url, chain_id=chain_id)

        logger.debug(f"Created Web3 client for chain {chain_id} ({rpc_url})")
        self._clients[chain_id] = client
        return client

    def clear(self) -> None:
        self._clients.clear()
