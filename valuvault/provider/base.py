# valuvault/provider/base.py
"""
ValuVault Provider: Encryption Provider Interface

The encryption provider is the FHE engine the client talks to. It is an
external collaborator; this module only fixes the shape of the conversation
and narrows its untyped answers into typed records at the boundary.

    ProviderRuntime.init_sdk()                    load the runtime once
    ProviderRuntime.create_instance(cfg, signer)  bind to network + signer
    FhevmInstance.create_encrypted_input(c, u)    -> EncryptedInputBuffer
        .add32(value) / .encrypt()                -> RawEncryptedInput
    FhevmInstance.generate_keypair()              -> Keypair (ephemeral)
    FhevmInstance.create_eip712(...)              -> typed-data dict
    FhevmInstance.user_decrypt(...)               -> {handle: value}

Handles are bytes32 values; throughout the client they travel as
``0x`` + 64 lowercase hex characters.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence, Tuple, Union

from web3 import Web3

from ..config import FhevmConfig


# =============================================================================
# Constants
# =============================================================================

HANDLE_SIZE = 32

USER_DECRYPT_PRIMARY_TYPE = "UserDecryptRequestVerification"

EIP712_DOMAIN_FIELDS = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]

USER_DECRYPT_FIELDS = [
    {"name": "publicKey", "type": "bytes"},
    {"name": "contractAddresses", "type": "address[]"},
    {"name": "startTimestamp", "type": "uint256"},
    {"name": "durationDays", "type": "uint256"},
]


# =============================================================================
# Exceptions
# =============================================================================

class ProviderError(Exception):
    """Base encryption provider error."""
    pass


class ProviderUnavailableError(ProviderError):
    """Provider runtime could not be loaded."""
    pass


class DecryptionRefusedError(ProviderError):
    """Decryption service refused the request."""
    pass


# =============================================================================
# Boundary Types
# =============================================================================

def normalize_hex(value: Union[bytes, str]) -> str:
    """Return lowercase hex without ``0x``."""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).hex()
    if not isinstance(value, str):
        raise ValueError(f"Expected hex string or bytes, got {type(value).__name__}")
    text = value[2:] if value[:2].lower() == "0x" else value
    try:
        bytes.fromhex(text)
    except ValueError:
        raise ValueError(f"Not valid hex: {value[:18]!r}")
    return text.lower()


def normalize_handle(value: Union[bytes, str]) -> str:
    """Canonical handle form: ``0x`` + 64 lowercase hex characters."""
    text = normalize_hex(value)
    if len(text) != HANDLE_SIZE * 2:
        raise ValueError(f"Handle must be {HANDLE_SIZE} bytes, got {len(text) // 2}")
    return "0x" + text


@dataclass(frozen=True)
class RawEncryptedInput:
    """Provider output for one ``encrypt()`` call."""
    handles: Tuple[str, ...]
    input_proof: bytes

    @classmethod
    def from_response(cls, data: Any) -> RawEncryptedInput:
        """
        Narrow a provider response (object or dict with ``handles`` and
        ``inputProof``).

        Raises:
            ValueError: If the shape or sizes are wrong
        """
        if isinstance(data, RawEncryptedInput):
            return data
        if isinstance(data, dict):
            handles = data.get("handles")
            proof = data.get("inputProof", data.get("input_proof"))
        else:
            handles = getattr(data, "handles", None)
            proof = getattr(data, "input_proof", None)

        if not handles:
            raise ValueError("Encrypted input has no handles")
        if not proof:
            raise ValueError("Encrypted input has no proof")

        proof_bytes = bytes.fromhex(normalize_hex(proof))
        return cls(
            handles=tuple(normalize_handle(h) for h in handles),
            input_proof=proof_bytes,
        )


@dataclass(frozen=True)
class Keypair:
    """Ephemeral decryption keypair (hex, no ``0x``)."""
    public_key: str
    private_key: str

    def __repr__(self) -> str:
        return f"Keypair(public_key={self.public_key[:16]}..., private_key=<redacted>)"

    @classmethod
    def from_response(cls, data: Any) -> Keypair:
        if isinstance(data, Keypair):
            return data
        if isinstance(data, dict):
            public_key = data.get("publicKey", data.get("public_key"))
            private_key = data.get("privateKey", data.get("private_key"))
        else:
            public_key = getattr(data, "public_key", None)
            private_key = getattr(data, "private_key", None)
        if not public_key or not private_key:
            raise ValueError("Keypair is missing a key")
        return cls(public_key=normalize_hex(public_key), private_key=normalize_hex(private_key))


# =============================================================================
# EIP-712 Structure
# =============================================================================

def build_user_decrypt_eip712(
    config: FhevmConfig,
    public_key: str,
    contract_addresses: Sequence[str],
    start_timestamp: int,
    duration_days: int,
) -> Dict[str, Any]:
    """
    Build the user-decryption authorization typed data.

    Returns:
        Dict with ``domain``, ``types`` (including ``EIP712Domain``),
        ``primaryType`` and ``message``
    """
    if not contract_addresses:
        raise ValueError("At least one contract address is required")
    if start_timestamp <= 0 or duration_days <= 0:
        raise ValueError("Start timestamp and duration must be positive")

    return {
        "domain": {
            "name": "Decryption",
            "version": "1",
            "chainId": config.gateway_chain_id,
            "verifyingContract": Web3.to_checksum_address(
                config.verifying_contract_address_decryption
            ),
        },
        "types": {
            "EIP712Domain": list(EIP712_DOMAIN_FIELDS),
            USER_DECRYPT_PRIMARY_TYPE: list(USER_DECRYPT_FIELDS),
        },
        "primaryType": USER_DECRYPT_PRIMARY_TYPE,
        "message": {
            "publicKey": "0x" + normalize_hex(public_key),
            "contractAddresses": [Web3.to_checksum_address(a) for a in contract_addresses],
            "startTimestamp": int(start_timestamp),
            "durationDays": int(duration_days),
        },
    }


# =============================================================================
# Abstract Interfaces
# =============================================================================

class EncryptedInputBuffer(ABC):
    """Accumulates plaintext values for one destination and submitter."""

    @abstractmethod
    def add32(self, value: int) -> EncryptedInputBuffer:
        pass

    @abstractmethod
    async def encrypt(self) -> Any:
        """Encrypt buffered values; returns handles and an input proof."""
        pass


class FhevmInstance(ABC):
    """Provider instance bound to one network and one signer."""

    @abstractmethod
    def create_encrypted_input(self, contract_address: str, user_address: str) -> EncryptedInputBuffer:
        pass

    @abstractmethod
    def generate_keypair(self) -> Any:
        pass

    @abstractmethod
    def create_eip712(
        self,
        public_key: str,
        contract_addresses: Sequence[str],
        start_timestamp: int,
        duration_days: int,
    ) -> Dict[str, Any]:
        pass

    @abstractmethod
    async def user_decrypt(
        self,
        handle_contract_pairs: List[Dict[str, str]],
        private_key: str,
        public_key: str,
        signature: str,
        contract_addresses: Sequence[str],
        user_address: str,
        start_timestamp: int,
        duration_days: int,
    ) -> Dict[str, Any]:
        """
        Exchange a signed authorization for plaintexts.

        Returns:
            Mapping of handle -> decrypted value
        """
        pass


class ProviderRuntime(ABC):
    """Loader for the provider runtime and factory for instances."""

    @abstractmethod
    async def init_sdk(self) -> None:
        pass

    @abstractmethod
    async def create_instance(self, config: FhevmConfig, signer: Any) -> FhevmInstance:
        pass
