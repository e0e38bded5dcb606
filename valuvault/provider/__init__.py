# valuvault/provider/__init__.py
"""
ValuVault Provider: Encryption Provider Boundary

    ProviderRuntime / FhevmInstance / EncryptedInputBuffer  - interfaces
    RawEncryptedInput / Keypair                             - typed records
    build_user_decrypt_eip712                               - authorization structure
    Coprocessor / MockKms / MockFhevmRuntime                - in-memory stack
"""

from .base import (
    HANDLE_SIZE,
    USER_DECRYPT_PRIMARY_TYPE,
    ProviderError,
    ProviderUnavailableError,
    DecryptionRefusedError,
    RawEncryptedInput,
    Keypair,
    normalize_hex,
    normalize_handle,
    build_user_decrypt_eip712,
    EncryptedInputBuffer,
    FhevmInstance,
    ProviderRuntime,
)

from .mock import (
    Coprocessor,
    MockKms,
    MockFhevmInstance,
    MockFhevmRuntime,
    seal_to_public_key,
    open_sealed,
)

__all__ = [
    "HANDLE_SIZE",
    "USER_DECRYPT_PRIMARY_TYPE",
    "ProviderError",
    "ProviderUnavailableError",
    "DecryptionRefusedError",
    "RawEncryptedInput",
    "Keypair",
    "normalize_hex",
    "normalize_handle",
    "build_user_decrypt_eip712",
    "EncryptedInputBuffer",
    "FhevmInstance",
    "ProviderRuntime",
    "Coprocessor",
    "MockKms",
    "MockFhevmInstance",
    "MockFhevmRuntime",
    "seal_to_public_key",
    "open_sealed",
]
