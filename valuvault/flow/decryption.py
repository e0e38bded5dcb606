# valuvault/flow/decryption.py
"""
ValuVault Flow: Decryption Requester

Exchanges an AuthorizationGrant and a handle for the comparison outcome.
The grant is checked locally first (scope, session, expiry) so a request
that cannot succeed never reaches the service. The service answer is
narrowed to a 0/1 outcome before it leaves this module.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

from web3 import Web3

from ..errors import DecryptionError
from ..provider.base import normalize_handle
from .authorization import AuthorizationGrant
from .session import EncryptionSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ComparisonResult:
    """Decrypted outcome: is the submitted FDV above the benchmark?"""
    above_benchmark: bool
    raw_value: int
    handle: str

    @property
    def label(self) -> str:
        return "Above Benchmark" if self.above_benchmark else "Below Benchmark"


def normalize_outcome(value: Any) -> int:
    """
    Narrow a decrypted value to 0 or 1.

    Accepts bool, int and decimal/hex strings.

    Raises:
        ValueError: Anything else, or a value other than 0/1
    """
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        number = value
    elif isinstance(value, str):
        text = value.strip().lower()
        number = int(text, 16) if text.startswith("0x") else int(text)
    else:
        raise ValueError(f"Unexpected decrypted value type {type(value).__name__}")
    if number not in (0, 1):
        raise ValueError(f"Comparison outcome must be 0 or 1, got {number}")
    return number


class DecryptionRequester:
    """Calls the decryption service through the session's provider instance."""

    def __init__(self, clock=time.time):
        self._clock = clock

    async def decrypt(
        self,
        session: EncryptionSession,
        grant: AuthorizationGrant,
        handle: str,
        destination: str,
    ) -> ComparisonResult:
        """
        Decrypt ``handle`` using ``grant``.

        Raises:
            DecryptionError: Grant does not cover the handle, stale or expired
                grant, service refusal/unavailability, malformed response
        """
        if not grant.covers(handle, destination):
            raise DecryptionError("Authorization does not cover this ciphertext handle")
        if not session.ready or grant.session_id != session.session_id:
            raise DecryptionError("Authorization belongs to a previous session")
        if grant.is_expired(self._clock()):
            raise DecryptionError("Authorization has expired")

        handle = normalize_handle(handle)
        destination = Web3.to_checksum_address(destination)

        logger.info("🔓 Decrypting result...")
        try:
            results = await session.instance.user_decrypt(
                grant.to_request_pairs(),
                grant.keypair.private_key,
                grant.keypair.public_key,
                grant.signature,
                list(grant.contract_addresses),
                grant.user_address,
                grant.start_timestamp,
                grant.duration_days,
            )
        except Exception as e:
            logger.error(f"❌ Decrypt error: {e}")
            raise DecryptionError("Failed to decrypt result", e) from e

        value = self._lookup(results, handle)
        try:
            outcome = normalize_outcome(value)
        except ValueError as e:
            raise DecryptionError("Decryption service returned an invalid outcome", e) from e

        logger.info("✅ Result decrypted")
        return ComparisonResult(above_benchmark=outcome == 1, raw_value=outcome, handle=handle)

    @staticmethod
    def _lookup(results: Any, handle: str) -> Optional[Any]:
        if not isinstance(results, dict):
            raise DecryptionError("Decryption service returned an unexpected response")
        for key, value in results.items():
            try:
                if normalize_handle(key) == handle:
                    return value
            except (TypeError, ValueError):
                continue
        raise DecryptionError("Decryption response has no entry for the requested handle")
