# valuvault/flow/submission.py
"""
ValuVault Flow: Submission Controller

Delivers an EncryptedInput to the comparison contract and blocks until the
transaction is confirmed. One call is one attempt: no retry, and a failed
attempt leaves nothing behind (no receipt).
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass

from web3 import Web3

from ..adapters.base import Signer
from ..errors import SubmissionError
from ..ledger.contract import ComparisonContract
from .inputs import EncryptedInput

logger = logging.getLogger(__name__)

DEFAULT_CONFIRMATION_TIMEOUT = 120.0


@dataclass(frozen=True)
class SubmissionReceipt:
    """
    Evidence that an encrypted input was accepted by the ledger.

    Attributes:
        tx_hash: Transaction hash
        confirmed: Always True (unconfirmed submissions produce no receipt)
        block_number: Inclusion block
        submitted_at: Wall-clock time the transaction was sent
        confirmed_at: Event-loop monotonic time of confirmation
        submitter: Sender address
        destination: Contract address
        session_id: Session that produced the input
    """
    tx_hash: str
    confirmed: bool
    block_number: int
    submitted_at: float
    confirmed_at: float
    submitter: str
    destination: str
    session_id: str


class SubmissionController:
    """Sends ``submitFDV`` and waits for confirmation."""

    def __init__(
        self,
        contract: ComparisonContract,
        enforce_single_submission: bool = False,
        confirmation_timeout: float = DEFAULT_CONFIRMATION_TIMEOUT,
    ):
        self._contract = contract
        self._enforce_single = enforce_single_submission
        self._timeout = confirmation_timeout

    async def submit(self, encrypted_input: EncryptedInput, signer: Signer) -> SubmissionReceipt:
        """
        Submit and confirm.

        Raises:
            SubmissionError: Wrong signer, already submitted (when gated),
                rejection, revert, timeout or network error
        """
        if Web3.to_checksum_address(signer.address) != encrypted_input.submitter:
            raise SubmissionError("Signer does not match the input's submitter")
        if Web3.to_checksum_address(self._contract.address) != encrypted_input.destination:
            raise SubmissionError("Input was encrypted for a different contract")

        if self._enforce_single:
            try:
                already = await self._contract.has_submitted(signer.address)
            except Exception as e:
                raise SubmissionError("Could not check previous submissions", e) from e
            if already:
                raise SubmissionError("This address has already submitted an FDV")

        submitted_at = time.time()
        try:
            tx_hash = await self._contract.submit(signer, encrypted_input.handle, encrypted_input.proof)
            logger.info(f"📤 Transaction submitted: {tx_hash}")
            ledger_receipt = await self._contract.wait_for_confirmation(signer, tx_hash, self._timeout)
        except Exception as e:
            logger.error(f"❌ Submit error: {e}")
            raise SubmissionError("Failed to submit FDV", e) from e

        logger.info(f"✅ Transaction confirmed in block {ledger_receipt.block_number}")
        return SubmissionReceipt(
            tx_hash=ledger_receipt.tx_hash,
            confirmed=True,
            block_number=ledger_receipt.block_number,
            submitted_at=submitted_at,
            confirmed_at=asyncio.get_running_loop().time(),
            submitter=encrypted_input.submitter,
            destination=encrypted_input.destination,
            session_id=encrypted_input.session_id,
        )
