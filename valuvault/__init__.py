# valuvault/__init__.py
"""
ValuVault: Confidential FDV Comparison Client

A party submits a private fully-diluted-valuation estimate, encrypted on the
client, to a ledger contract that compares it homomorphically against a
fixed benchmark. Only the party can decrypt the one-bit outcome.

    ┌────────────┐  handle+proof  ┌──────────────┐  ebool handle  ┌─────────┐
    │  provider  │ ─────────────▶ │    ledger    │ ─────────────▶ │   KMS   │
    │ (encrypt)  │                │ (submitFDV)  │   ACL grants   │(decrypt)│
    └────────────┘                └──────────────┘                └─────────┘
          ▲                              ▲                             ▲
          └───────────── flow.ComparisonWorkflow (signer) ─────────────┘

Submodules:
    config      - Deployment constants and environment overrides
    errors      - Workflow error taxonomy
    adapters/   - Signers (LocalAccountSigner, InMemorySigner)
    provider/   - Encryption provider boundary + in-memory FHE stack
    ledger/     - Comparison contract (web3 / in-memory)
    flow/       - Session, input, submission, timer, authorization,
                  decryption, state machine, orchestrator

Quick Start:
    from valuvault import (
        ComparisonWorkflow, SessionManager, DeploymentConfig,
        Coprocessor, MockFhevmRuntime, InMemoryComparisonContract, InMemorySigner,
    )

    coprocessor = Coprocessor(propagation_lag=0.5)
    config = DeploymentConfig(propagation_seconds=2)
    workflow = ComparisonWorkflow(
        config,
        InMemorySigner(chain_id=config.chain_id),
        InMemoryComparisonContract(coprocessor),
        SessionManager(MockFhevmRuntime(coprocessor)),
    )
    result = await workflow.run(150)
    print(result.label)  # "Above Benchmark"

Version: 0.1.0
"""

__version__ = "0.1.0"

# =============================================================================
# Config / Errors
# =============================================================================
from .config import (
    FhevmConfig,
    DeploymentConfig,
    load_config,
    BENCHMARK_FDV,
    PROPAGATION_DELAY_SECONDS,
    AUTHORIZATION_VALIDITY_DAYS,
)

from .errors import (
    WorkflowError,
    InitializationError,
    SessionBusyError,
    ValidationError,
    EncryptionError,
    SubmissionError,
    AuthorizationError,
    DecryptionError,
    StateTransitionError,
    ConfigError,
)

# =============================================================================
# Boundaries
# =============================================================================
from .adapters import (
    Signer,
    LocalAccountSigner,
    InMemorySigner,
)

from .provider import (
    ProviderRuntime,
    FhevmInstance,
    Coprocessor,
    MockFhevmRuntime,
)

from .ledger import (
    ComparisonContract,
    Web3ComparisonContract,
    InMemoryComparisonContract,
)

# =============================================================================
# Flow
# =============================================================================
from .flow import (
    EncryptionSession,
    SessionManager,
    ComparisonResult,
    ComparisonWorkflow,
)

__all__ = [
    "__version__",
    "FhevmConfig",
    "DeploymentConfig",
    "load_config",
    "BENCHMARK_FDV",
    "PROPAGATION_DELAY_SECONDS",
    "AUTHORIZATION_VALIDITY_DAYS",
    "WorkflowError",
    "InitializationError",
    "SessionBusyError",
    "ValidationError",
    "EncryptionError",
    "SubmissionError",
    "AuthorizationError",
    "DecryptionError",
    "StateTransitionError",
    "ConfigError",
    "Signer",
    "LocalAccountSigner",
    "InMemorySigner",
    "ProviderRuntime",
    "FhevmInstance",
    "Coprocessor",
    "MockFhevmRuntime",
    "ComparisonContract",
    "Web3ComparisonContract",
    "InMemoryComparisonContract",
    "EncryptionSession",
    "SessionManager",
    "ComparisonResult",
    "ComparisonWorkflow",
]
