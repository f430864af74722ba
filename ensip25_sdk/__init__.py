"""
ENSIP-25 attestation SDK: verify the link between ENS names and ERC-8004 agents.
"""

from .core.attestation import (
    AgentFileFetchError,
    build_text_record_key,
    check_agent_file,
    extract_ens_endpoint,
    fetch_agent_file,
    get_verification_status,
)
from .core.cancellation import CancellationToken, FetchCancelledError
from .core.interop_address import decode_interop_address, encode_interop_address
from .core.models import (
    AttestationResult,
    AttestationResultType,
    ErrorAttestation,
    InvalidAttestation,
    NoAttestationState,
    NotSetAttestation,
    Registry,
    ResolvedState,
    ResolveErrorState,
    ResolveState,
    ValidAttestation,
    VerificationStatus,
)
from .core.sdk import SDK
from .core.verifier import AttestationVerifier

__version__ = "0.1.0"

__all__ = [
    "SDK",
    "AttestationVerifier",
    "AgentFileFetchError",
    "CancellationToken",
    "FetchCancelledError",
    "build_text_record_key",
    "check_agent_file",
    "extract_ens_endpoint",
    "fetch_agent_file",
    "get_verification_status",
    "encode_interop_address",
    "decode_interop_address",
    "AttestationResult",
    "AttestationResultType",
    "ValidAttestation",
    "InvalidAttestation",
    "NotSetAttestation",
    "ErrorAttestation",
    "VerificationStatus",
    "Registry",
    "ResolveState",
    "ResolvedState",
    "NoAttestationState",
    "ResolveErrorState",
]
