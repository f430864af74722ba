"""
Core data models for the ENSIP-25 attestation SDK.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union


# Type aliases
AgentId = str  # decimal token id within a registry (e.g., "26433")
ChainId = int
Address = str  # 0x-hex
URI = str  # data:..., ipfs://... or https://...
RegistryValue = str  # ERC-7930 interoperable address, 0x-hex


class AttestationResultType(Enum):
    """Outcome kinds of the Agent -> ENS check."""
    VALID = "valid"
    INVALID = "invalid"
    NOT_SET = "not-set"
    ERROR = "error"


@dataclass(frozen=True)
class ValidAttestation:
    """Agent file declares an ENS endpoint matching the queried name."""
    endpoint: str

    @property
    def type(self) -> AttestationResultType:
        return AttestationResultType.VALID

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "endpoint": self.endpoint}


@dataclass(frozen=True)
class InvalidAttestation:
    """Agent file declares an ENS endpoint for some other name."""
    endpoint: str

    @property
    def type(self) -> AttestationResultType:
        return AttestationResultType.INVALID

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "endpoint": self.endpoint}


@dataclass(frozen=True)
class NotSetAttestation:
    """Agent file has no `ENS` service entry."""

    @property
    def type(self) -> AttestationResultType:
        return AttestationResultType.NOT_SET

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value}


@dataclass(frozen=True)
class ErrorAttestation:
    """The agent file could not be read or was unreadable."""
    message: str

    @property
    def type(self) -> AttestationResultType:
        return AttestationResultType.ERROR

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "message": self.message}


AttestationResult = Union[ValidAttestation, InvalidAttestation, NotSetAttestation, ErrorAttestation]


@dataclass(frozen=True)
class VerificationStatus:
    """Combined state of the attestation loop."""
    label: str
    closed: bool

    def to_dict(self) -> Dict[str, Any]:
        return {"label": self.label, "closed": self.closed}


@dataclass(frozen=True)
class Registry:
    """An ERC-8004 identity registry deployment."""
    label: str
    value: RegistryValue  # ERC-7930 encoding of (chainId, contractAddress)
    contractAddress: Address
    chainId: ChainId

    @classmethod
    def from_contract(cls, label: str, chain_id: ChainId, address: Address) -> Registry:
        """Create a registry entry, deriving its interop value from chain and address."""
        from .interop_address import encode_interop_address
        return cls(
            label=label,
            value=encode_interop_address(chain_id, address),
            contractAddress=address,
            chainId=chain_id,
        )


class ResolveStatus(Enum):
    """Outcome kinds of a full resolution request."""
    RESOLVED = "resolved"
    NO_ATTESTATION = "no-attestation"
    ERROR = "error"


@dataclass(frozen=True)
class _AttestationState:
    textRecordKey: str
    registryAddress: RegistryValue
    agentFileResult: Optional[AttestationResult] = None
    # Raw `avatar` text record, e.g. an ENSIP-12 `eip155:1/erc721:...` URI; never resolved to an image.
    ensAvatar: Optional[str] = None

    @property
    def ens_to_agent(self) -> bool:
        return False

    @property
    def agent_to_ens(self) -> bool:
        return isinstance(self.agentFileResult, ValidAttestation)

    @property
    def verification_status(self) -> VerificationStatus:
        from .attestation import get_verification_status
        return get_verification_status(self.ens_to_agent, self.agent_to_ens)

    def _base_dict(self) -> Dict[str, Any]:
        return {
            "textRecordKey": self.textRecordKey,
            "registryAddress": self.registryAddress,
            "agentFileResult": self.agentFileResult.to_dict() if self.agentFileResult else None,
            "ensAvatar": self.ensAvatar,
            "verification": self.verification_status.to_dict(),
        }


@dataclass(frozen=True)
class ResolvedState(_AttestationState):
    """The ENS name carries the attestation text record."""
    textRecordValue: str = ""

    @property
    def status(self) -> ResolveStatus:
        return ResolveStatus.RESOLVED

    @property
    def ens_to_agent(self) -> bool:
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status.value, "textRecordValue": self.textRecordValue, **self._base_dict()}


@dataclass(frozen=True)
class NoAttestationState(_AttestationState):
    """The ENS name has no attestation text record for this agent."""

    @property
    def status(self) -> ResolveStatus:
        return ResolveStatus.NO_ATTESTATION

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status.value, **self._base_dict()}


@dataclass(frozen=True)
class ResolveErrorState:
    """Resolution failed before any attestation could be read."""
    message: str

    @property
    def status(self) -> ResolveStatus:
        return ResolveStatus.ERROR

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status.value, "message": self.message}


ResolveState = Union[ResolvedState, NoAttestationState, ResolveErrorState]
