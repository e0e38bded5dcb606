# valuvault/adapters/__init__.py
"""
ValuVault Adapters: Wallet Integration Layer

Adapters:
    Signer             - Abstract base class for signers
    LocalAccountSigner - eth_account key + AsyncWeb3
    InMemorySigner     - Real key, in-memory transaction log (testing)
"""

from .base import (
    Signer,
    EIP712Domain,
    SignResult,
    SignerError,
    NotConnectedError,
    SignatureRejectedError,
    TransactionRejectedError,
)

from .local import (
    LocalAccountSigner,
    InMemorySigner,
)

__all__ = [
    "Signer",
    "EIP712Domain",
    "SignResult",
    "SignerError",
    "NotConnectedError",
    "SignatureRejectedError",
    "TransactionRejectedError",
    "LocalAccountSigner",
    "InMemorySigner",
]
