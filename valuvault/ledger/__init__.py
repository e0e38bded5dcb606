# valuvault/ledger/__init__.py
"""
ValuVault Ledger: Comparison Contract

    ComparisonContract           - abstract interface
    Web3ComparisonContract       - AsyncWeb3-backed
    InMemoryComparisonContract   - Coprocessor-backed (testing)
"""

from .contract import (
    ZERO_HANDLE,
    LedgerReceipt,
    LedgerError,
    TransactionRevertedError,
    ComparisonContract,
    Web3ComparisonContract,
    InMemoryComparisonContract,
)

__all__ = [
    "ZERO_HANDLE",
    "LedgerReceipt",
    "LedgerError",
    "TransactionRevertedError",
    "ComparisonContract",
    "Web3ComparisonContract",
    "InMemoryComparisonContract",
]
