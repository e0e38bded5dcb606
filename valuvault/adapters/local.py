# valuvault/adapters/local.py
"""
ValuVault Adapters: Local Key Signers

LocalAccountSigner signs with an eth_account key and broadcasts through an
AsyncWeb3 provider. InMemorySigner keeps the same real key handling (its
typed-data signatures recover to its address) but never touches a network:
transactions are appended to an in-memory log.

Usage:
    from eth_account import Account
    from web3 import AsyncWeb3

    w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url))
    signer = LocalAccountSigner(Account.from_key(key), w3, chain_id=11155111)

    # Tests
    signer = InMemorySigner(chain_id=11155111)
    signer.decline_signatures = True   # simulate the user pressing "Reject"
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import AsyncWeb3, Web3
from web3.exceptions import TimeExhausted

from .base import (
    EIP712Domain,
    SignResult,
    Signer,
    SignerError,
    SignatureRejectedError,
    TransactionRejectedError,
)

logger = logging.getLogger(__name__)

DEFAULT_GAS_LIMIT = 3_000_000


def _sign_typed(
    account: LocalAccount,
    domain: EIP712Domain,
    types: Dict[str, List[Dict[str, str]]],
    message: Dict[str, Any],
) -> SignResult:
    if "EIP712Domain" in types:
        raise SignerError("EIP712Domain must not be part of the signed types")
    signed = account.sign_typed_data(
        domain_data=domain.to_dict(),
        message_types=types,
        message_data=message,
    )
    return SignResult(signature=bytes(signed.signature))


# =============================================================================
# LocalAccountSigner
# =============================================================================

class LocalAccountSigner(Signer):
    """
    Signer backed by a local private key and a JSON-RPC node.

    Transactions are signed locally and sent raw; nonce and gas are filled
    from the node when the caller leaves them out.
    """

    def __init__(
        self,
        account: LocalAccount,
        w3: AsyncWeb3,
        chain_id: int,
        gas_limit: Optional[int] = None,
    ):
        self._account = account
        self._w3 = w3
        self._chain_id = chain_id
        self._gas_limit = gas_limit

    @classmethod
    def from_key(cls, private_key: str, rpc_url: str, chain_id: int) -> LocalAccountSigner:
        w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url))
        return cls(Account.from_key(private_key), w3, chain_id)

    @property
    def address(self) -> str:
        return self._account.address

    @property
    def chain_id(self) -> int:
        return self._chain_id

    @property
    def w3(self) -> AsyncWeb3:
        return self._w3

    async def send_transaction(self, tx: Dict[str, Any]) -> str:
        tx = dict(tx)
        tx.setdefault("from", self.address)
        tx.setdefault("chainId", self._chain_id)
        if "nonce" not in tx:
            tx["nonce"] = await self._w3.eth.get_transaction_count(self.address, "pending")
        if "gas" not in tx:
            tx["gas"] = self._gas_limit or await self._w3.eth.estimate_gas(tx)
        if "gasPrice" not in tx and "maxFeePerGas" not in tx:
            tx["gasPrice"] = await self._w3.eth.gas_price

        signed = self._account.sign_transaction(tx)
        tx_hash = await self._w3.eth.send_raw_transaction(signed.raw_transaction)
        return Web3.to_hex(tx_hash)

    async def wait_for_receipt(self, tx_hash: str, timeout: float = 120.0) -> Dict[str, Any]:
        try:
            receipt = await self._w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
        except TimeExhausted as e:
            raise SignerError(f"Transaction {tx_hash} not confirmed within {timeout}s") from e
        return dict(receipt)

    async def sign_typed_data(
        self,
        domain: EIP712Domain,
        types: Dict[str, List[Dict[str, str]]],
        message: Dict[str, Any],
    ) -> SignResult:
        return _sign_typed(self._account, domain, types, message)


# =============================================================================
# InMemorySigner
# =============================================================================

class InMemorySigner(Signer):
    """
    Signer with a real key and no network.

    Typed-data signatures are genuine (recoverable with eth_account);
    transactions are recorded and confirmed immediately.
    """

    def __init__(
        self,
        chain_id: int,
        account: Optional[LocalAccount] = None,
        decline_signatures: bool = False,
        decline_transactions: bool = False,
        confirmation_delay: float = 0.0,
    ):
        self._account = account or Account.create()
        self._chain_id = chain_id
        self._connected = True
        self.decline_signatures = decline_signatures
        self.decline_transactions = decline_transactions
        self.confirmation_delay = confirmation_delay

        self.transactions: List[Dict[str, Any]] = []
        self.signatures: List[Dict[str, Any]] = []
        self._receipts: Dict[str, Dict[str, Any]] = {}
        self._block_number = 0

    @property
    def address(self) -> str:
        return self._account.address

    @property
    def chain_id(self) -> int:
        return self._chain_id

    @property
    def is_connected(self) -> bool:
        return self._connected

    def disconnect(self) -> None:
        self._connected = False

    def switch_chain(self, chain_id: int) -> None:
        self._chain_id = chain_id

    async def send_transaction(self, tx: Dict[str, Any]) -> str:
        self._require_connected()
        if self.decline_transactions:
            raise TransactionRejectedError("User rejected transaction")

        nonce = len(self.transactions)
        record = dict(tx, nonce=nonce, **{"from": self.address})
        tx_hash = Web3.to_hex(Web3.keccak(
            text=f"{self.address}:{nonce}:{record.get('to')}:{record.get('data')!r}"
        ))
        self.transactions.append(record)

        self._block_number += 1
        self._receipts[tx_hash] = {
            "transactionHash": tx_hash,
            "blockNumber": self._block_number,
            "status": 1,
        }
        logger.debug(f"In-memory tx {tx_hash[:10]}... recorded (nonce {nonce})")
        return tx_hash

    async def wait_for_receipt(self, tx_hash: str, timeout: float = 120.0) -> Dict[str, Any]:
        if tx_hash not in self._receipts:
            raise SignerError(f"Unknown transaction {tx_hash}")
        if self.confirmation_delay:
            await asyncio.sleep(min(self.confirmation_delay, timeout))
        return dict(self._receipts[tx_hash])

    async def sign_typed_data(
        self,
        domain: EIP712Domain,
        types: Dict[str, List[Dict[str, str]]],
        message: Dict[str, Any],
    ) -> SignResult:
        self._require_connected()
        if self.decline_signatures:
            raise SignatureRejectedError("User rejected signature request")
        result = _sign_typed(self._account, domain, types, message)
        self.signatures.append({"domain": domain, "types": types, "message": message})
        return result
