# valuvault/ledger/contract.py
"""
ValuVault Ledger: Comparison Contract Interface

Python interface to the ValuVault comparison contract. The contract keeps
one encrypted comparison outcome per submitter:

    submitFDV(bytes32 encryptedFDV, bytes proof)    state-changing
    getComparisonResult() -> bytes32                view, caller-scoped
    hasSubmitted(address) -> bool                   view

Requirements:
    pip install web3

Usage:
    contract = Web3ComparisonContract(w3, address)

    tx_hash = await contract.submit(signer, handle, proof)
    receipt = await contract.wait_for_confirmation(signer, tx_hash)
    handle = await contract.get_comparison_result(signer.address)
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Set

from web3 import AsyncWeb3, Web3

from ..adapters.base import Signer
from ..config import BENCHMARK_FDV, COMPARISON_CONTRACT_ABI, DEFAULT_CONTRACT_ADDRESS
from ..provider.base import normalize_handle

if TYPE_CHECKING:
    from ..provider.mock import Coprocessor

logger = logging.getLogger(__name__)

ZERO_HANDLE = "0x" + "00" * 32


# =============================================================================
# Types
# =============================================================================

@dataclass(frozen=True)
class LedgerReceipt:
    """Included transaction."""
    tx_hash: str
    block_number: int
    status: int

    @property
    def succeeded(self) -> bool:
        return self.status == 1

    @classmethod
    def from_receipt(cls, tx_hash: str, receipt: Dict[str, Any]) -> LedgerReceipt:
        return cls(
            tx_hash=tx_hash,
            block_number=int(receipt.get("blockNumber") or 0),
            status=int(receipt.get("status", 0)),
        )


# =============================================================================
# Exceptions
# =============================================================================

class LedgerError(Exception):
    """Base ledger error."""
    pass


class TransactionRevertedError(LedgerError):
    """Transaction was included but reverted."""
    def __init__(self, tx_hash: str):
        self.tx_hash = tx_hash
        super().__init__(f"Transaction reverted: {tx_hash}")


# =============================================================================
# Abstract Interface
# =============================================================================

class ComparisonContract(ABC):
    """Ledger program that compares encrypted submissions to the benchmark."""

    @property
    @abstractmethod
    def address(self) -> str:
        pass

    @abstractmethod
    async def submit(self, signer: Signer, handle: str, proof: bytes) -> str:
        """Send ``submitFDV``; returns the transaction hash."""
        pass

    @abstractmethod
    async def wait_for_confirmation(self, signer: Signer, tx_hash: str, timeout: float = 120.0) -> LedgerReceipt:
        """
        Block until included.

        Raises:
            TransactionRevertedError: If the receipt status is not 1
        """
        pass

    @abstractmethod
    async def get_comparison_result(self, caller: str) -> str:
        """Handle of ``caller``'s latest comparison outcome."""
        pass

    @abstractmethod
    async def has_submitted(self, party: str) -> bool:
        pass


# =============================================================================
# Web3ComparisonContract
# =============================================================================

class Web3ComparisonContract(ComparisonContract):
    """ComparisonContract backed by an AsyncWeb3 provider."""

    def __init__(self, w3: AsyncWeb3, address: str, abi: Optional[List[Dict[str, Any]]] = None):
        self._w3 = w3
        self._address = Web3.to_checksum_address(address)
        self._contract = w3.eth.contract(address=self._address, abi=abi or COMPARISON_CONTRACT_ABI)

    @property
    def address(self) -> str:
        return self._address

    async def submit(self, signer: Signer, handle: str, proof: bytes) -> str:
        tx = await self._contract.functions.submitFDV(
            bytes.fromhex(normalize_handle(handle)[2:]),
            proof,
        ).build_transaction({
            "from": signer.address,
            "chainId": signer.chain_id,
        })
        return await signer.send_transaction(tx)

    async def wait_for_confirmation(self, signer: Signer, tx_hash: str, timeout: float = 120.0) -> LedgerReceipt:
        receipt = LedgerReceipt.from_receipt(tx_hash, await signer.wait_for_receipt(tx_hash, timeout))
        if not receipt.succeeded:
            raise TransactionRevertedError(tx_hash)
        return receipt

    async def get_comparison_result(self, caller: str) -> str:
        raw = await self._contract.functions.getComparisonResult().call(
            {"from": Web3.to_checksum_address(caller)}
        )
        return normalize_handle(raw)

    async def has_submitted(self, party: str) -> bool:
        return bool(await self._contract.functions.hasSubmitted(
            Web3.to_checksum_address(party)
        ).call())


# =============================================================================
# In-Memory Contract (for testing without blockchain)
# =============================================================================

class InMemoryComparisonContract(ComparisonContract):
    """
    In-memory ValuVault contract running on a Coprocessor.

    ``submitFDV`` verifies the input proof against (contract, sender),
    computes ``value > benchmark`` homomorphically and grants the result to
    the contract and the sender. Grants become visible to the KMS after the
    coprocessor's propagation lag.
    """

    def __init__(
        self,
        coprocessor: Coprocessor,
        address: str = DEFAULT_CONTRACT_ADDRESS,
        benchmark: int = BENCHMARK_FDV,
    ):
        self.coprocessor = coprocessor
        self._address = Web3.to_checksum_address(address)
        self.benchmark = benchmark
        self.revert_next = False
        self.submissions = 0
        self._results: Dict[str, str] = {}
        self._submitted: Set[str] = set()
        self._status: Dict[str, int] = {}

    @property
    def address(self) -> str:
        return self._address

    async def submit(self, signer: Signer, handle: str, proof: bytes) -> str:
        handle = normalize_handle(handle)
        tx_hash = await signer.send_transaction({
            "to": self._address,
            "data": ("submitFDV", handle, proof.hex()),
        })
        self._status[tx_hash] = self._execute(signer.address, handle, proof)
        return tx_hash

    def _execute(self, sender: str, handle: str, proof: bytes) -> int:
        if self.revert_next:
            self.revert_next = False
            return 0
        if not self.coprocessor.verify_input(handle, proof, self._address, sender):
            logger.debug(f"Input proof rejected for {sender[:10]}...")
            return 0

        result = self.coprocessor.compare_gt(handle, self.benchmark)
        self.coprocessor.allow(result, self._address)
        self.coprocessor.allow(result, sender)

        sender = Web3.to_checksum_address(sender)
        self._results[sender] = result
        self._submitted.add(sender)
        self.submissions += 1
        return 1

    async def wait_for_confirmation(self, signer: Signer, tx_hash: str, timeout: float = 120.0) -> LedgerReceipt:
        raw = await signer.wait_for_receipt(tx_hash, timeout)
        receipt = LedgerReceipt(
            tx_hash=tx_hash,
            block_number=int(raw.get("blockNumber") or 0),
            status=self._status.get(tx_hash, 0),
        )
        if not receipt.succeeded:
            raise TransactionRevertedError(tx_hash)
        return receipt

    async def get_comparison_result(self, caller: str) -> str:
        return self._results.get(Web3.to_checksum_address(caller), ZERO_HANDLE)

    async def has_submitted(self, party: str) -> bool:
        return Web3.to_checksum_address(party) in self._submitted
