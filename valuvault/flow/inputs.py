# valuvault/flow/inputs.py
"""
ValuVault Flow: Encrypted Input Builder

Turns a plaintext FDV into a ciphertext handle plus an input proof, scoped
to one destination contract and one submitter. The scope stops the
ciphertext from being replayed against another contract or on behalf of
another party.

Validation runs first and never touches the provider: empty, non-numeric,
zero, negative and out-of-range (> uint32) values fail with ValidationError
before any cryptographic work.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Union

from web3 import Web3

from ..config import UINT32_MAX
from ..errors import EncryptionError, ValidationError
from ..provider.base import RawEncryptedInput
from .session import EncryptionSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EncryptedInput:
    """One encoded value for one destination and one submitter."""
    handle: str
    proof: bytes
    destination: str
    submitter: str
    session_id: str

    def __repr__(self) -> str:
        return (
            f"EncryptedInput(handle={self.handle[:10]}..., proof={len(self.proof)}B, "
            f"destination={self.destination}, submitter={self.submitter})"
        )


def parse_plaintext(raw: Union[int, str, None]) -> int:
    """
    Validate a plaintext FDV.

    Accepts an int or a decimal string. Returns the value as int.

    Raises:
        ValidationError: Empty, non-numeric, <= 0 or > 2**32 - 1
    """
    if isinstance(raw, bool):
        raise ValidationError("Please enter a valid FDV value")
    if isinstance(raw, int):
        value = raw
    elif isinstance(raw, str):
        text = raw.strip()
        if not text or not (text.isascii() and text.isdigit()):
            raise ValidationError("Please enter a valid FDV value")
        value = int(text)
    else:
        raise ValidationError("Please enter a valid FDV value")

    if value <= 0:
        raise ValidationError("FDV must be a positive integer")
    if value > UINT32_MAX:
        raise ValidationError(f"FDV must not exceed {UINT32_MAX}")
    return value


class EncryptedInputBuilder:
    """Builds EncryptedInput records through a session's provider instance."""

    async def build(
        self,
        session: EncryptionSession,
        destination: str,
        submitter: str,
        plaintext: Union[int, str],
    ) -> EncryptedInput:
        """
        Validate and encrypt ``plaintext``.

        Raises:
            ValidationError: Bad plaintext (no provider call made)
            InitializationError: Session closed
            EncryptionError: Provider failed or returned a malformed result
        """
        value = parse_plaintext(plaintext)
        session.require_ready()

        try:
            destination = Web3.to_checksum_address(destination)
            submitter = Web3.to_checksum_address(submitter)
        except (TypeError, ValueError) as e:
            raise ValidationError("Invalid destination or submitter address", e) from e

        try:
            buffer = session.instance.create_encrypted_input(destination, submitter)
            buffer.add32(value)
            response = await buffer.encrypt()
        except Exception as e:
            raise EncryptionError("Failed to encrypt FDV", e) from e

        try:
            raw = RawEncryptedInput.from_response(response)
        except ValueError as e:
            raise EncryptionError("Provider returned a malformed encrypted input", e) from e

        encrypted = EncryptedInput(
            handle=raw.handles[0],
            proof=raw.input_proof,
            destination=destination,
            submitter=submitter,
            session_id=session.session_id,
        )
        logger.debug(f"Encrypted input {encrypted.handle[:10]}... for {destination[:10]}...")
        return encrypted
