# valuvault/flow/session.py
"""
ValuVault Flow: Encryption Session

A session binds one party (signer address) on one network to an instance of
the encryption provider. It is created once on first use and reused by the
input builder and the authorization builder until it is closed.

Re-entrancy:
    At most one initialization per party may be in flight. The in-flight
    flag is checked and set under a lock in a single step; a concurrent
    request is rejected with SessionBusyError, never queued. The flag is
    cleared when the attempt ends, whether it succeeded or failed.

Teardown:
    ``close``/``close_all`` notify the session's close listeners. An
    initialization that was in flight when its party was closed is dropped
    instead of cached.

Usage:
    sessions = SessionManager(runtime)
    session = await sessions.initialize(config, signer)

    # Disconnect / network change
    sessions.close(signer.address)
"""

from __future__ import annotations

import logging
import secrets
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set, Tuple

from web3 import Web3

from ..adapters.base import Signer
from ..config import DeploymentConfig
from ..errors import InitializationError, SessionBusyError
from ..provider.base import FhevmInstance, ProviderRuntime

logger = logging.getLogger(__name__)

CloseListener = Callable[["EncryptionSession"], None]


# =============================================================================
# EncryptionSession
# =============================================================================

@dataclass
class EncryptionSession:
    """
    Ready binding between a party, a network and a provider instance.

    Attributes:
        party: Checksummed signer address
        chain_id: Network the session is bound to
        instance: Provider instance
        session_id: Random identifier, used to detect stale artifacts
        created_at: Wall-clock creation time
    """
    party: str
    chain_id: int
    instance: FhevmInstance
    session_id: str = field(default_factory=lambda: secrets.token_hex(8))
    created_at: float = field(default_factory=time.time)
    _ready: bool = field(default=True, repr=False)
    _close_listeners: List[CloseListener] = field(default_factory=list, repr=False)

    @property
    def ready(self) -> bool:
        return self._ready

    def add_close_listener(self, listener: CloseListener) -> None:
        """Call ``listener(session)`` once when the session closes."""
        self._close_listeners.append(listener)

    def remove_close_listener(self, listener: CloseListener) -> None:
        if listener in self._close_listeners:
            self._close_listeners.remove(listener)

    def close(self) -> None:
        if not self._ready:
            return
        self._ready = False
        listeners, self._close_listeners = self._close_listeners, []
        for listener in listeners:
            listener(self)

    def require_ready(self) -> None:
        """Raise if the session was closed."""
        if not self._ready:
            raise InitializationError(f"Session {self.session_id} is closed")


# =============================================================================
# SessionManager
# =============================================================================

class SessionManager:
    """Creates, caches and tears down encryption sessions."""

    def __init__(self, runtime: ProviderRuntime):
        self._runtime = runtime
        self._sessions: Dict[Tuple[str, int], EncryptionSession] = {}
        self._in_flight: Set[str] = set()
        self._generations: Dict[str, int] = {}
        self._epoch = 0
        self._lock = threading.Lock()

    # =========================================================================
    # In-flight guard
    # =========================================================================

    def _try_begin(self, party: str) -> bool:
        with self._lock:
            if party in self._in_flight:
                return False
            self._in_flight.add(party)
            return True

    def _end(self, party: str) -> None:
        with self._lock:
            self._in_flight.discard(party)

    def is_initializing(self, party: str) -> bool:
        with self._lock:
            return Web3.to_checksum_address(party) in self._in_flight

    def _generation(self, party: str) -> Tuple[int, int]:
        with self._lock:
            return self._epoch, self._generations.get(party, 0)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def get(self, party: str, chain_id: int) -> Optional[EncryptionSession]:
        session = self._sessions.get((Web3.to_checksum_address(party), chain_id))
        if session is not None and session.ready:
            return session
        return None

    async def initialize(self, config: DeploymentConfig, signer: Optional[Signer]) -> EncryptionSession:
        """
        Return the party's ready session, creating it if needed.

        Raises:
            SessionBusyError: Another initialization for the party is in flight
            InitializationError: No signer, network mismatch, provider failure
        """
        if signer is None or not signer.is_connected:
            raise InitializationError("No signer connected")

        party = Web3.to_checksum_address(signer.address)
        existing = self.get(party, config.chain_id)
        if existing is not None:
            return existing

        if not self._try_begin(party):
            raise SessionBusyError(party)

        try:
            if signer.chain_id != config.chain_id:
                raise InitializationError(
                    f"Network mismatch: signer on chain {signer.chain_id}, "
                    f"expected {config.chain_id}"
                )

            generation = self._generation(party)
            try:
                await self._runtime.init_sdk()
                instance = await self._runtime.create_instance(config.fhevm, signer)
            except Exception as e:
                logger.error(f"FHEVM init failed for {party[:10]}...: {e}")
                raise InitializationError("FHEVM initialization failed", e) from e

            if self._generation(party) != generation:
                logger.warning(f"Session for {party[:10]}... closed during initialization")
                raise InitializationError("Session was closed during initialization")

            session = EncryptionSession(party=party, chain_id=config.chain_id, instance=instance)
            self._sessions[(party, config.chain_id)] = session
            logger.info(f"FHEVM initialized for {party[:10]}... on chain {config.chain_id} ✅")
            return session
        finally:
            self._end(party)

    def close(self, party: str, chain_id: Optional[int] = None) -> int:
        """
        Tear down a party's sessions (all networks unless ``chain_id``).

        Returns:
            Number of sessions closed
        """
        party = Web3.to_checksum_address(party)
        with self._lock:
            self._generations[party] = self._generations.get(party, 0) + 1
        keys = [k for k in self._sessions if k[0] == party and (chain_id is None or k[1] == chain_id)]
        for key in keys:
            self._sessions.pop(key).close()
        if keys:
            logger.info(f"Closed {len(keys)} session(s) for {party[:10]}...")
        return len(keys)

    def close_all(self) -> None:
        with self._lock:
            self._epoch += 1
        sessions = list(self._sessions.values())
        self._sessions.clear()
        for session in sessions:
            session.close()
