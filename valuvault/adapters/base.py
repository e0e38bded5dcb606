# valuvault/adapters/base.py
"""
ValuVault Adapters: Abstract Signer Interface

The signer is the wallet side of the workflow. It holds custody of the
party's key and does exactly two things for us:

    - send a transaction and report its receipt
    - sign EIP-712 typed data

Implementations:
    - LocalAccountSigner: eth_account key + AsyncWeb3 transport
    - InMemorySigner: real eth_account key, in-memory transaction log

Usage:
    signer = LocalAccountSigner(account, w3, chain_id=11155111)

    tx_hash = await signer.send_transaction(tx)
    receipt = await signer.wait_for_receipt(tx_hash)

    result = await signer.sign_typed_data(domain, types, message)
    print(result.hex)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional


# =============================================================================
# Data Classes
# =============================================================================

@dataclass(frozen=True)
class EIP712Domain:
    """EIP-712 domain separator."""
    name: str
    version: str
    chain_id: int
    verifying_contract: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to EIP-712 format."""
        domain = {
            "name": self.name,
            "version": self.version,
            "chainId": self.chain_id,
        }
        if self.verifying_contract:
            domain["verifyingContract"] = self.verifying_contract
        return domain

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> EIP712Domain:
        """Parse from EIP-712 format."""
        try:
            return cls(
                name=str(data["name"]),
                version=str(data["version"]),
                chain_id=int(data["chainId"]),
                verifying_contract=data.get("verifyingContract"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Malformed EIP-712 domain: {e}") from e


@dataclass(frozen=True)
class SignResult:
    """Signature result (65 bytes, r || s || v)."""
    signature: bytes

    @property
    def hex(self) -> str:
        """0x-prefixed hex signature."""
        return "0x" + self.signature.hex()


# =============================================================================
# Exceptions
# =============================================================================

class SignerError(Exception):
    """Base exception for signer errors."""
    pass


class NotConnectedError(SignerError):
    """Signer not connected."""
    pass


class SignatureRejectedError(SignerError):
    """User declined the signature request."""
    pass


class TransactionRejectedError(SignerError):
    """User declined to send the transaction."""
    pass


# =============================================================================
# Abstract Base Class
# =============================================================================

class Signer(ABC):
    """Wallet custody: transactions and typed-data signatures."""

    @property
    @abstractmethod
    def address(self) -> str:
        """Checksummed account address."""
        pass

    @property
    @abstractmethod
    def chain_id(self) -> int:
        """Chain the signer is connected to."""
        pass

    @property
    def is_connected(self) -> bool:
        return True

    @abstractmethod
    async def send_transaction(self, tx: Dict[str, Any]) -> str:
        """
        Sign and broadcast a transaction.

        Args:
            tx: Transaction dict (``to``, ``data``, optional gas fields)

        Returns:
            0x-prefixed transaction hash

        Raises:
            TransactionRejectedError: If the user declines
        """
        pass

    @abstractmethod
    async def wait_for_receipt(self, tx_hash: str, timeout: float = 120.0) -> Dict[str, Any]:
        """
        Block until the transaction is included.

        Returns:
            Receipt dict with at least ``status`` and ``blockNumber``
        """
        pass

    @abstractmethod
    async def sign_typed_data(
        self,
        domain: EIP712Domain,
        types: Dict[str, List[Dict[str, str]]],
        message: Dict[str, Any],
    ) -> SignResult:
        """
        Sign typed data using EIP-712.

        ``types`` must not contain ``EIP712Domain``; the domain is applied
        from ``domain``.

        Raises:
            SignatureRejectedError: If the user declines
        """
        pass

    def _require_connected(self) -> None:
        if not self.is_connected:
            raise NotConnectedError("Signer not connected")
