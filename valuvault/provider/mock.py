# valuvault/provider/mock.py
"""
ValuVault Provider: In-Memory FHE Stack (for testing without a network)

Simulates the three off-client parties the workflow depends on:

    Coprocessor  - ciphertext store, access-control list, comparison op
    MockKms      - decryption service: verifies the EIP-712 authorization,
                   the validity window and ACL visibility, then seals each
                   plaintext to the requester's ephemeral X25519 key
    MockFhevmRuntime / MockFhevmInstance
                 - the client-side provider the flow components call

ACL grants become visible only after a propagation lag, so a decryption
attempted too early is refused exactly as the real service would.

Usage:
    coprocessor = Coprocessor(propagation_lag=0.05)
    runtime = MockFhevmRuntime(coprocessor)
    contract = InMemoryComparisonContract(coprocessor, benchmark=100)
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import time
from typing import Any, Callable, Dict, List, Optional, Sequence

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey, X25519PublicKey
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from eth_account import Account
from eth_account.messages import encode_typed_data
from web3 import Web3

from ..config import FhevmConfig
from .base import (
    DecryptionRefusedError,
    EncryptedInputBuffer,
    FhevmInstance,
    ProviderError,
    ProviderRuntime,
    ProviderUnavailableError,
    build_user_decrypt_eip712,
    normalize_handle,
    normalize_hex,
)

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400
SEAL_INFO = b"valuvault-user-decrypt-v1"
PROOF_DOMAIN = b"valuvault-input-proof-v1"

EBOOL = "ebool"
EUINT32 = "euint32"


def _addr(address: str) -> str:
    return Web3.to_checksum_address(address)


# =============================================================================
# Sealing (KMS -> user)
# =============================================================================

def _derive_key(shared: bytes) -> bytes:
    return HKDF(algorithm=hashes.SHA256(), length=32, salt=None, info=SEAL_INFO).derive(shared)


def seal_to_public_key(public_key_hex: str, plaintext: bytes) -> Dict[str, str]:
    """Encrypt ``plaintext`` for the holder of an X25519 public key."""
    recipient = X25519PublicKey.from_public_bytes(bytes.fromhex(normalize_hex(public_key_hex)))
    ephemeral = X25519PrivateKey.generate()
    key = _derive_key(ephemeral.exchange(recipient))
    nonce = secrets.token_bytes(12)
    ciphertext = AESGCM(key).encrypt(nonce, plaintext, SEAL_INFO)
    ephemeral_pub = ephemeral.public_key().public_bytes(
        serialization.Encoding.Raw, serialization.PublicFormat.Raw
    )
    return {
        "ephemeral": ephemeral_pub.hex(),
        "nonce": nonce.hex(),
        "ciphertext": ciphertext.hex(),
    }


def open_sealed(private_key_hex: str, sealed: Dict[str, str]) -> bytes:
    """Decrypt a value produced by :func:`seal_to_public_key`."""
    private_key = X25519PrivateKey.from_private_bytes(bytes.fromhex(normalize_hex(private_key_hex)))
    peer = X25519PublicKey.from_public_bytes(bytes.fromhex(sealed["ephemeral"]))
    key = _derive_key(private_key.exchange(peer))
    return AESGCM(key).decrypt(bytes.fromhex(sealed["nonce"]), bytes.fromhex(sealed["ciphertext"]), SEAL_INFO)


# =============================================================================
# Coprocessor
# =============================================================================

class Coprocessor:
    """
    In-memory ciphertext store with an access-control list.

    Args:
        propagation_lag: Seconds before an ACL grant is visible to the KMS
        clock: Wall-clock source (seconds)
    """

    def __init__(self, propagation_lag: float = 0.0, clock: Callable[[], float] = time.time):
        self.propagation_lag = propagation_lag
        self.clock = clock
        self._values: Dict[str, int] = {}
        self._types: Dict[str, str] = {}
        # handle -> address -> visible_at
        self._acl: Dict[str, Dict[str, float]] = {}

    def _new_handle(self) -> str:
        return normalize_handle(secrets.token_bytes(32))

    def store(self, value: int, fhe_type: str = EUINT32) -> str:
        handle = self._new_handle()
        self._values[handle] = int(value)
        self._types[handle] = fhe_type
        self._acl[handle] = {}
        return handle

    def exists(self, handle: str) -> bool:
        return normalize_handle(handle) in self._values

    def value_of(self, handle: str) -> int:
        handle = normalize_handle(handle)
        if handle not in self._values:
            raise ProviderError(f"Unknown handle {handle[:10]}...")
        return self._values[handle]

    def type_of(self, handle: str) -> str:
        return self._types[normalize_handle(handle)]

    # -------------------------------------------------------------------------
    # Access control
    # -------------------------------------------------------------------------

    def allow(self, handle: str, address: str, delay: Optional[float] = None) -> None:
        """Grant ``address`` access; visible after ``delay`` (default: lag)."""
        handle = normalize_handle(handle)
        lag = self.propagation_lag if delay is None else delay
        self._acl.setdefault(handle, {})[_addr(address)] = self.clock() + lag

    def is_allowed(self, handle: str, address: str, at: Optional[float] = None) -> bool:
        handle = normalize_handle(handle)
        visible_at = self._acl.get(handle, {}).get(_addr(address))
        if visible_at is None:
            return False
        return (self.clock() if at is None else at) >= visible_at

    # -------------------------------------------------------------------------
    # Input proofs
    # -------------------------------------------------------------------------

    def make_proof(self, handles: Sequence[str], contract: str, user: str) -> bytes:
        material = PROOF_DOMAIN + bytes.fromhex(_addr(contract)[2:]) + bytes.fromhex(_addr(user)[2:])
        for h in handles:
            material += bytes.fromhex(normalize_hex(h))
        return bytes([len(handles)]) + Web3.keccak(material)

    def verify_input(self, handle: str, proof: bytes, contract: str, user: str) -> bool:
        """Check the proof binds ``handle`` to ``contract`` and ``user``."""
        handle = normalize_handle(handle)
        if handle not in self._values or len(proof) != 33:
            return False
        return self.make_proof([handle], contract, user) == proof

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def compare_gt(self, handle: str, constant: int) -> str:
        """Return a new ebool handle for ``value(handle) > constant``."""
        result = 1 if self.value_of(handle) > constant else 0
        return self.store(result, EBOOL)


# =============================================================================
# MockKms
# =============================================================================

class MockKms:
    """
    Decryption service.

    Releases a plaintext only when the signature recovers to the user, the
    validity window is open, every handle's contract was authorized, and
    both the user and the contract have a visible ACL grant.
    """

    def __init__(self, coprocessor: Coprocessor, config: FhevmConfig):
        self.coprocessor = coprocessor
        self.config = config
        self.available = True
        self.requests: List[Dict[str, Any]] = []

    def _recover(self, public_key: str, contracts: Sequence[str], start: int, duration: int, signature: str) -> str:
        typed = build_user_decrypt_eip712(self.config, public_key, contracts, start, duration)
        types = {k: v for k, v in typed["types"].items() if k != "EIP712Domain"}
        signable = encode_typed_data(
            domain_data=typed["domain"],
            message_types=types,
            message_data=typed["message"],
        )
        return Account.recover_message(signable, signature="0x" + normalize_hex(signature))

    async def user_decrypt(
        self,
        handle_contract_pairs: List[Dict[str, str]],
        public_key: str,
        signature: str,
        contract_addresses: Sequence[str],
        user_address: str,
        start_timestamp: int,
        duration_days: int,
    ) -> Dict[str, Dict[str, str]]:
        self.requests.append({
            "pairs": list(handle_contract_pairs),
            "user": user_address,
            "start": start_timestamp,
            "duration": duration_days,
        })
        if not self.available:
            raise ProviderError("Relayer unavailable")

        try:
            signer = self._recover(public_key, contract_addresses, start_timestamp, duration_days, signature)
        except Exception as e:
            raise DecryptionRefusedError(f"Invalid authorization signature: {e}") from e
        if signer != _addr(user_address):
            raise DecryptionRefusedError("Authorization signature does not match user")

        now = self.coprocessor.clock()
        if now < start_timestamp - 60:
            raise DecryptionRefusedError("Authorization not yet valid")
        if now >= start_timestamp + duration_days * SECONDS_PER_DAY:
            raise DecryptionRefusedError("Authorization expired")

        allowed_contracts = {_addr(c) for c in contract_addresses}
        sealed: Dict[str, Dict[str, str]] = {}
        for pair in handle_contract_pairs:
            handle = normalize_handle(pair["handle"])
            contract = _addr(pair["contractAddress"])
            if contract not in allowed_contracts:
                raise DecryptionRefusedError(f"Contract {contract} not authorized")
            if not self.coprocessor.exists(handle):
                raise DecryptionRefusedError(f"Unknown handle {handle[:10]}...")
            if not self.coprocessor.is_allowed(handle, user_address, now):
                raise DecryptionRefusedError(f"User not allowed on {handle[:10]}... (ACL not synced)")
            if not self.coprocessor.is_allowed(handle, contract, now):
                raise DecryptionRefusedError(f"Contract not allowed on {handle[:10]}...")
            value = self.coprocessor.value_of(handle)
            sealed[handle] = seal_to_public_key(public_key, value.to_bytes(32, "big"))
        return sealed


# =============================================================================
# Client-side Provider
# =============================================================================

class MockEncryptedInputBuffer(EncryptedInputBuffer):
    """Buffered values for one (contract, user) scope."""

    def __init__(self, instance: MockFhevmInstance, contract_address: str, user_address: str):
        self._instance = instance
        self._contract = _addr(contract_address)
        self._user = _addr(user_address)
        self._values: List[int] = []

    def add32(self, value: int) -> MockEncryptedInputBuffer:
        if not 0 <= int(value) < 2**32:
            raise ProviderError(f"Value out of range for euint32: {value}")
        self._values.append(int(value))
        return self

    async def encrypt(self) -> Dict[str, Any]:
        self._instance.encrypt_calls += 1
        if self._instance.fail_encrypt:
            raise ProviderError("Input encryption failed")
        if not self._values:
            raise ProviderError("No values to encrypt")
        coprocessor = self._instance.coprocessor
        handles = [coprocessor.store(v, EUINT32) for v in self._values]
        proof = coprocessor.make_proof(handles, self._contract, self._user)
        # Untyped on purpose: raw bytes handles, hex proof
        return {
            "handles": [bytes.fromhex(h[2:]) for h in handles],
            "inputProof": "0x" + proof.hex(),
        }


class MockFhevmInstance(FhevmInstance):
    """Provider instance bound to a network config and signer address."""

    def __init__(self, coprocessor: Coprocessor, kms: MockKms, config: FhevmConfig, signer_address: str):
        self.coprocessor = coprocessor
        self.kms = kms
        self.config = config
        self.signer_address = signer_address
        self.fail_encrypt = False
        self.create_input_calls = 0
        self.encrypt_calls = 0
        self.keypairs_generated = 0

    def create_encrypted_input(self, contract_address: str, user_address: str) -> MockEncryptedInputBuffer:
        self.create_input_calls += 1
        return MockEncryptedInputBuffer(self, contract_address, user_address)

    def generate_keypair(self) -> Dict[str, str]:
        self.keypairs_generated += 1
        private_key = X25519PrivateKey.generate()
        return {
            "publicKey": private_key.public_key().public_bytes(
                serialization.Encoding.Raw, serialization.PublicFormat.Raw
            ).hex(),
            "privateKey": private_key.private_bytes(
                serialization.Encoding.Raw,
                serialization.PrivateFormat.Raw,
                serialization.NoEncryption(),
            ).hex(),
        }

    def create_eip712(
        self,
        public_key: str,
        contract_addresses: Sequence[str],
        start_timestamp: int,
        duration_days: int,
    ) -> Dict[str, Any]:
        return build_user_decrypt_eip712(
            self.config, public_key, contract_addresses, start_timestamp, duration_days
        )

    async def user_decrypt(
        self,
        handle_contract_pairs: List[Dict[str, str]],
        private_key: str,
        public_key: str,
        signature: str,
        contract_addresses: Sequence[str],
        user_address: str,
        start_timestamp: int,
        duration_days: int,
    ) -> Dict[str, Any]:
        sealed = await self.kms.user_decrypt(
            handle_contract_pairs,
            public_key,
            signature,
            contract_addresses,
            user_address,
            start_timestamp,
            duration_days,
        )
        results: Dict[str, Any] = {}
        for handle, box in sealed.items():
            value = int.from_bytes(open_sealed(private_key, box), "big")
            results[handle] = bool(value) if self.coprocessor.type_of(handle) == EBOOL else value
        return results


class MockFhevmRuntime(ProviderRuntime):
    """
    Provider runtime loader.

    Args:
        coprocessor: Shared ciphertext store
        available: False simulates a runtime that failed to load
        init_delay: Seconds spent in the handshake (for concurrency tests)
    """

    def __init__(self, coprocessor: Optional[Coprocessor] = None, available: bool = True, init_delay: float = 0.0):
        self.coprocessor = coprocessor or Coprocessor()
        self.available = available
        self.init_delay = init_delay
        self.fail_create = False
        self.init_calls = 0
        self.instances: List[MockFhevmInstance] = []
        self._kms: Optional[MockKms] = None

    @property
    def kms(self) -> Optional[MockKms]:
        return self._kms

    async def init_sdk(self) -> None:
        self.init_calls += 1
        if self.init_delay:
            await asyncio.sleep(self.init_delay)
        if not self.available:
            raise ProviderUnavailableError("Relayer SDK not loaded")

    async def create_instance(self, config: FhevmConfig, signer: Any) -> MockFhevmInstance:
        if self.fail_create:
            raise ProviderError("Transport rejected instance creation")
        if self._kms is None or self._kms.config != config:
            self._kms = MockKms(self.coprocessor, config)
        instance = MockFhevmInstance(self.coprocessor, self._kms, config, signer.address)
        self.instances.append(instance)
        logger.debug(f"Mock FHEVM instance created for {signer.address[:10]}...")
        return instance
