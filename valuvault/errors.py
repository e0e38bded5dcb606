# valuvault/errors.py
"""
ValuVault: Workflow Error Taxonomy

Every failure surfaced by the submission/decryption workflow is one of six
attempt-scoped errors. None of them is fatal to the process: the caller
displays the message and may start a fresh attempt.

    WorkflowError
    ├── InitializationError      (session handshake)
    │   └── SessionBusyError     (re-entrant initialization rejected)
    ├── ValidationError          (local input checks, before any crypto)
    ├── EncryptionError          (provider-side encoding)
    ├── SubmissionError          (transaction rejected / reverted / lost)
    ├── AuthorizationError       (typed-data signature not produced)
    ├── DecryptionError          (decryption service refused or failed)
    └── StateTransitionError     (stage entered out of order: a bug)

Adapter layers (signer, provider, ledger) raise their own exceptions; the
flow components wrap them with ``raise ... from exc`` so ``cause`` and
``__cause__`` both point at the original error.
"""

from __future__ import annotations

from typing import Optional


class WorkflowError(Exception):
    """Base class for attempt-scoped workflow failures."""

    stage = "workflow"

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause

    def __str__(self) -> str:
        if self.cause is not None and str(self.cause):
            return f"{self.message}: {self.cause}"
        return self.message


class InitializationError(WorkflowError):
    """Encryption session could not be established."""
    stage = "initialization"


class SessionBusyError(InitializationError):
    """Another initialization for the same party is still in flight."""

    def __init__(self, party: str):
        super().__init__(f"Session initialization already in progress for {party}")
        self.party = party


class ValidationError(WorkflowError):
    """Plaintext input rejected before any cryptographic work."""
    stage = "validation"


class EncryptionError(WorkflowError):
    """Encryption provider failed to produce a ciphertext and proof."""
    stage = "encryption"


class SubmissionError(WorkflowError):
    """Encrypted input was not confirmed on the ledger."""
    stage = "submission"


class AuthorizationError(WorkflowError):
    """Decryption authorization could not be built or signed."""
    stage = "authorization"


class DecryptionError(WorkflowError):
    """Decryption service did not release a usable result."""
    stage = "decryption"


class StateTransitionError(WorkflowError):
    """A stage was entered before its predecessor's postcondition held."""
    stage = "state"


class ConfigError(ValueError):
    """Invalid deployment configuration."""
    pass
