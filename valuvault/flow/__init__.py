# valuvault/flow/__init__.py
"""
ValuVault Flow: Submission and Decryption Workflow

Components:
    SessionManager          - one encryption session per (party, network)
    EncryptedInputBuilder   - plaintext FDV -> handle + proof
    SubmissionController    - submitFDV + confirmation
    PropagationTimer        - enforced wait before decryption
    AuthorizationBuilder    - ephemeral keypair + signed typed data
    DecryptionRequester     - grant + handle -> comparison outcome
    reduce                  - pure state machine
    ComparisonWorkflow      - orchestrates all of the above
"""

from .session import (
    EncryptionSession,
    SessionManager,
)

from .inputs import (
    EncryptedInput,
    EncryptedInputBuilder,
    parse_plaintext,
)

from .submission import (
    SubmissionReceipt,
    SubmissionController,
)

from .timer import (
    ReadySignal,
    PropagationTimer,
    await_propagation,
)

from .authorization import (
    AuthorizationGrant,
    AuthorizationBuilder,
    strip_domain_type,
)

from .decryption import (
    ComparisonResult,
    DecryptionRequester,
    normalize_outcome,
)

from .state import (
    # States
    Idle,
    Initializing,
    Ready,
    Encrypting,
    Submitting,
    AwaitingPropagation,
    ReadyToDecrypt,
    Decrypting,
    Decrypted,
    Failed,
    WorkflowState,
    TERMINAL_STATES,

    # Events
    SessionRequested,
    SessionReady,
    EncryptionStarted,
    InputEncrypted,
    SubmissionConfirmed,
    PropagationElapsed,
    DecryptionStarted,
    ResultDecrypted,
    StageFailed,
    Reset,
    WorkflowEvent,

    reduce,
    is_terminal,
)

from .workflow import ComparisonWorkflow

__all__ = [
    "EncryptionSession",
    "SessionManager",
    "EncryptedInput",
    "EncryptedInputBuilder",
    "parse_plaintext",
    "SubmissionReceipt",
    "SubmissionController",
    "ReadySignal",
    "PropagationTimer",
    "await_propagation",
    "AuthorizationGrant",
    "AuthorizationBuilder",
    "strip_domain_type",
    "ComparisonResult",
    "DecryptionRequester",
    "normalize_outcome",
    "Idle",
    "Initializing",
    "Ready",
    "Encrypting",
    "Submitting",
    "AwaitingPropagation",
    "ReadyToDecrypt",
    "Decrypting",
    "Decrypted",
    "Failed",
    "WorkflowState",
    "TERMINAL_STATES",
    "SessionRequested",
    "SessionReady",
    "EncryptionStarted",
    "InputEncrypted",
    "SubmissionConfirmed",
    "PropagationElapsed",
    "DecryptionStarted",
    "ResultDecrypted",
    "StageFailed",
    "Reset",
    "WorkflowEvent",
    "reduce",
    "is_terminal",
    "ComparisonWorkflow",
]
