"""
ERC-7930 interoperable addresses for agent registries.

The ENSIP-25 text-record key embeds the registry as a binary
`<version><chainType><chainRefLen><chainRef><addrLen><address>` envelope,
hex-encoded with a `0x` prefix, e.g. Ethereum mainnet + registry contract:
`0x0001 0000 01 01 14 8004a169...a432`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from eth_utils import is_hex_address, to_checksum_address

# Currently restricted to EVM (eip155) namespaces; future namespaces can be added here.
CAIP_NAMESPACE_CODES = {"eip155": 0x0000}
INTEROP_VERSION = 1
EVM_ADDRESS_LENGTH = 20

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InteropAddress:
    """Decoded representation of an ERC-7930 address."""

    version: int
    chain_type: int
    chain_reference: int
    address: Optional[str]


def _normalize_int(value: Any) -> int:
    if isinstance(value, bool):
        raise TypeError("Chain reference must be an integer, not bool")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return int(value, 0)
    raise TypeError(f"Unsupported numeric type: {type(value)!r}")


def _chain_reference_bytes(chain_id: int) -> bytes:
    if chain_id < 0:
        raise ValueError("Chain reference must be non-negative")
    if chain_id == 0:
        return b"\x00"
    length = (chain_id.bit_length() + 7) // 8
    return chain_id.to_bytes(length, "big")


def encode_interop_address(chain_id: Any, address: str, namespace: str = "eip155") -> str:
    """
    Encode `(chain_id, address)` as a lowercase `0x`-prefixed ERC-7930 string.

    @param chain_id Chain identifier (int or numeric string).
    @param address  20-byte EVM contract address, any casing.
    @param namespace CAIP namespace (only `eip155` is supported).
    """
    if namespace not in CAIP_NAMESPACE_CODES:
        raise ValueError(f"Unsupported CAIP namespace: {namespace}")
    if not isinstance(address, str) or not is_hex_address(address):
        raise ValueError(f"Invalid EVM address: {address!r}")

    chain_reference = _chain_reference_bytes(_normalize_int(chain_id))
    address_bytes = bytes.fromhex(address[2:] if address.lower().startswith("0x") else address)

    payload = (
        INTEROP_VERSION.to_bytes(2, "big")
        + CAIP_NAMESPACE_CODES[namespace].to_bytes(2, "big")
        + len(chain_reference).to_bytes(1, "big")
        + chain_reference
        + len(address_bytes).to_bytes(1, "big")
        + address_bytes
    )
    return "0x" + payload.hex()


def decode_interop_address(value: str) -> InteropAddress:
    """
    Decode an ERC-7930 string produced by `encode_interop_address`.
    Validates the envelope lengths; normalizes the address via EIP-55.
    """
    if not isinstance(value, str):
        raise TypeError("Interop address must be a string")

    if not value.startswith("0x"):
        raise ValueError("Interop address must start with 0x")

    try:
        payload = bytes.fromhex(value[2:])
    except ValueError as exc:
        raise ValueError("Interop address must be valid hex") from exc

    # version(2) + chainType(2) + chainRefLen(1) + addrLen(1) at minimum.
    if len(payload) < 6:
        raise ValueError("Interop address too short")

    version = int.from_bytes(payload[0:2], "big")
    if version != INTEROP_VERSION:
        raise ValueError(f"Unsupported interop address version: {version}")

    chain_type = int.from_bytes(payload[2:4], "big")
    if chain_type not in CAIP_NAMESPACE_CODES.values():
        raise ValueError(f"Unsupported chain type: {chain_type:#06x}")

    chain_reference_length = payload[4]
    offset = 5 + chain_reference_length
    if len(payload) < offset + 1:
        raise ValueError("Chain reference length does not match payload")
    chain_reference = int.from_bytes(payload[5:offset], "big")

    address_length = payload[offset]
    address_bytes = payload[offset + 1 :]
    if len(address_bytes) != address_length:
        raise ValueError("Address length does not match payload")

    address = None
    if address_length:
        if address_length != EVM_ADDRESS_LENGTH:
            raise ValueError(f"EVM address must be {EVM_ADDRESS_LENGTH} bytes")
        address = to_checksum_address("0x" + address_bytes.hex())

    return InteropAddress(
        version=version,
        chain_type=chain_type,
        chain_reference=chain_reference,
        address=address,
    )


def interop_address_matches(value: str, chain_id: Any, address: str) -> bool:
    """Check whether `value` encodes exactly `(chain_id, address)` (EVM only)."""
    try:
        decoded = decode_interop_address(value)
        expected_chain_id = _normalize_int(chain_id)
        expected_address = to_checksum_address(address)
    except (TypeError, ValueError) as exc:
        logger.debug("Interop address %s not comparable: %s", value, exc)
        return False

    if decoded.chain_reference != expected_chain_id:
        return False

    return decoded.address == expected_address
