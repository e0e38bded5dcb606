# valuvault/flow/authorization.py
"""
ValuVault Flow: Decryption Authorization Builder

Produces a short-lived grant that lets the signer decrypt one ciphertext
handle of one contract:

    1. fresh ephemeral keypair (never reused across attempts)
    2. typed message: public key, [contract], start timestamp, validity days
    3. EIP712Domain removed from the types given to the signer
       (the domain is applied by the signing step itself)
    4. signature over the message

The signed structure must match what the decryption service verifies
byte-for-byte, so it is taken verbatim from the provider's ``create_eip712``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from web3 import Web3

from ..adapters.base import EIP712Domain, Signer
from ..config import AUTHORIZATION_VALIDITY_DAYS
from ..errors import AuthorizationError
from ..provider.base import Keypair, normalize_handle, normalize_hex
from .session import EncryptionSession

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400


@dataclass(frozen=True)
class AuthorizationGrant:
    """
    Signed, time-bounded, handle-scoped decryption permission.

    Attributes:
        keypair: Ephemeral keypair
        handle_pairs: ((handle, contract), ...) the grant covers
        contract_addresses: Contracts named in the signed message
        start_timestamp: Validity start (unix seconds)
        duration_days: Validity length
        signature: Hex signature without ``0x``
        user_address: Signer address
        session_id: Session the grant was built in
    """
    keypair: Keypair
    handle_pairs: Tuple[Tuple[str, str], ...]
    contract_addresses: Tuple[str, ...]
    start_timestamp: int
    duration_days: int
    signature: str
    user_address: str
    session_id: str

    @property
    def expires_at(self) -> int:
        return self.start_timestamp + self.duration_days * SECONDS_PER_DAY

    def is_expired(self, now: Optional[float] = None) -> bool:
        return (time.time() if now is None else now) >= self.expires_at

    def covers(self, handle: str, contract: str) -> bool:
        """True if the grant was built for exactly this (handle, contract)."""
        try:
            key = (normalize_handle(handle), Web3.to_checksum_address(contract))
        except (TypeError, ValueError):
            return False
        return key in self.handle_pairs

    def to_request_pairs(self):
        return [{"handle": h, "contractAddress": c} for h, c in self.handle_pairs]

    def __repr__(self) -> str:
        return (
            f"AuthorizationGrant(handles={len(self.handle_pairs)}, "
            f"start={self.start_timestamp}, days={self.duration_days}, user={self.user_address})"
        )


def strip_domain_type(types: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of ``types`` without ``EIP712Domain``."""
    return {name: fields for name, fields in types.items() if name != "EIP712Domain"}


class AuthorizationBuilder:
    """Builds AuthorizationGrant records; one fresh keypair per call."""

    def __init__(self, clock=time.time):
        self._clock = clock

    async def authorize(
        self,
        session: EncryptionSession,
        signer: Signer,
        handle: str,
        destination: str,
        validity_days: int = AUTHORIZATION_VALIDITY_DAYS,
    ) -> AuthorizationGrant:
        """
        Build and sign a grant for ``handle`` on ``destination``.

        Raises:
            InitializationError: Session closed
            AuthorizationError: Bad arguments, message construction failed,
                or the signer declined
        """
        session.require_ready()
        if Web3.to_checksum_address(signer.address) != session.party:
            raise AuthorizationError("Signer does not own this session")
        if validity_days < 1:
            raise AuthorizationError("Validity must be at least one day")

        try:
            handle = normalize_handle(handle)
            destination = Web3.to_checksum_address(destination)
            keypair = Keypair.from_response(session.instance.generate_keypair())
            start_timestamp = int(self._clock())
            contract_addresses = (destination,)

            typed = session.instance.create_eip712(
                keypair.public_key,
                list(contract_addresses),
                start_timestamp,
                validity_days,
            )
            domain = EIP712Domain.from_dict(typed["domain"])
            types = strip_domain_type(typed["types"])
            message = typed["message"]
        except Exception as e:
            raise AuthorizationError("Failed to build decryption authorization", e) from e

        try:
            result = await signer.sign_typed_data(domain, types, message)
        except Exception as e:
            logger.warning(f"Authorization signature not produced: {e}")
            raise AuthorizationError("Authorization signature declined", e) from e

        logger.debug(f"Authorization signed for {handle[:10]}... ({validity_days}d)")
        return AuthorizationGrant(
            keypair=keypair,
            handle_pairs=((handle, destination),),
            contract_addresses=contract_addresses,
            start_timestamp=start_timestamp,
            duration_days=validity_days,
            signature=normalize_hex(result.signature),
            user_address=Web3.to_checksum_address(signer.address),
            session_id=session.session_id,
        )
