"""
Contract ABIs and default deployments used by the SDK.
"""

from typing import Dict, List

from .models import ChainId, Registry

# ERC-8004 identity registry (read-only subset)
IDENTITY_REGISTRY_ABI = [
    {
        "inputs": [{"internalType": "uint256", "name": "tokenId", "type": "uint256"}],
        "name": "tokenURI",
        "outputs": [{"internalType": "string", "name": "", "type": "string"}],
        "stateMutability": "view",
        "type": "function",
    },
]

# ENS registry: node -> resolver lookup
ENS_REGISTRY_ABI = [
    {
        "inputs": [{"internalType": "bytes32", "name": "node", "type": "bytes32"}],
        "name": "resolver",
        "outputs": [{"internalType": "address", "name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function",
    },
]

# ENS public resolver: text records
RESOLVER_ABI = [
    {
        "inputs": [
            {"internalType": "bytes32", "name": "node", "type": "bytes32"},
            {"internalType": "string", "name": "key", "type": "string"},
        ],
        "name": "text",
        "outputs": [{"internalType": "string", "name": "", "type": "string"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"internalType": "bytes32", "name": "node", "type": "bytes32"},
            {"internalType": "string", "name": "key", "type": "string"},
            {"internalType": "string", "name": "value", "type": "string"},
        ],
        "name": "setText",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]

MAINNET_CHAIN_ID: ChainId = 1
SEPOLIA_CHAIN_ID: ChainId = 11155111
BASE_CHAIN_ID: ChainId = 8453
BASE_SEPOLIA_CHAIN_ID: ChainId = 84532

DEFAULT_RPC_URLS: Dict[ChainId, str] = {
    MAINNET_CHAIN_ID: "https://eth.drpc.org",
    SEPOLIA_CHAIN_ID: "https://sepolia.drpc.org",
    BASE_CHAIN_ID: "https://base.drpc.org",
    BASE_SEPOLIA_CHAIN_ID: "https://base-sepolia.drpc.org",
}

# Same address on mainnet and Sepolia; the chain is picked by the RPC.
ENS_REGISTRY_ADDRESSES: Dict[ChainId, str] = {
    MAINNET_CHAIN_ID: "0x00000000000C2E074eC69A0dFb2997BA6C7d2e1e",
    SEPOLIA_CHAIN_ID: "0x00000000000C2E074eC69A0dFb2997BA6C7d2e1e",
}

IDENTITY_REGISTRY_MAINNET = "0x8004A169FB4a3325136EB29fA0ceB6D2e539a432"
IDENTITY_REGISTRY_TESTNET = "0x8004A818BFB912233c491871b3d84c89A494BD9e"

DEFAULT_REGISTRIES: List[Registry] = [
    Registry.from_contract("8004 @ Ethereum Mainnet", MAINNET_CHAIN_ID, IDENTITY_REGISTRY_MAINNET),
    Registry.from_contract("8004 @ Ethereum Sepolia", SEPOLIA_CHAIN_ID, IDENTITY_REGISTRY_TESTNET),
    Registry.from_contract("8004 @ Base Mainnet", BASE_CHAIN_ID, IDENTITY_REGISTRY_MAINNET),
    Registry.from_contract("8004 @ Base Sepolia", BASE_SEPOLIA_CHAIN_ID, IDENTITY_REGISTRY_TESTNET),
]

TESTNET_CHAIN_IDS = frozenset({SEPOLIA_CHAIN_ID, BASE_SEPOLIA_CHAIN_ID})

DEFAULT_IPFS_GATEWAY = "ipfs.io"


def ens_chain_for(chain_id: ChainId) -> ChainId:
    """Map a registry chain to the chain its ENS names live on."""
    return SEPOLIA_CHAIN_ID if chain_id in TESTNET_CHAIN_IDS else MAINNET_CHAIN_ID
