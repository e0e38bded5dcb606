# valuvault/config.py
"""
ValuVault: Deployment Configuration

Network, relayer and contract constants for the comparison deployment, plus
the two timing knobs of the workflow (permission propagation wait and
authorization validity).

Defaults target Sepolia and the deployed ValuVault contract. Any value can be
overridden per deployment through environment variables; a ``.env`` file is
loaded first when present.

Environment:
    VALUVAULT_RPC_URL               JSON-RPC endpoint
    VALUVAULT_CONTRACT_ADDRESS      comparison contract
    VALUVAULT_RELAYER_URL           decryption relayer
    VALUVAULT_PROPAGATION_SECONDS   wait after confirmation (int, >= 0)
    VALUVAULT_AUTH_VALIDITY_DAYS    authorization validity (int, >= 1)
    VALUVAULT_SINGLE_SUBMISSION     gate on hasSubmitted (true/false)

Usage:
    from valuvault.config import load_config

    config = load_config()
    print(config.fhevm.chain_id)  # 11155111
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from .errors import ConfigError


# =============================================================================
# Constants
# =============================================================================

SEPOLIA_CHAIN_ID = 11155111
GATEWAY_CHAIN_ID = 10901

DEFAULT_RPC_URL = "https://ethereum-sepolia-rpc.publicnode.com"
DEFAULT_RELAYER_URL = "https://relayer.testnet.zama.org"
DEFAULT_CONTRACT_ADDRESS = "0x5bD92e11aDd45FC80Ef223038568Faba4302728B"

# Fixed in the contract at deployment; kept here for display only
BENCHMARK_FDV = 100

PROPAGATION_DELAY_SECONDS = 10
COUNTDOWN_INTERVAL_SECONDS = 1.0
AUTHORIZATION_VALIDITY_DAYS = 10

UINT32_MAX = 2**32 - 1

COMPARISON_CONTRACT_ABI: List[Dict[str, Any]] = [
    {
        "type": "function",
        "name": "submitFDV",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "encryptedFDV", "type": "bytes32"},
            {"name": "proof", "type": "bytes"},
        ],
        "outputs": [],
    },
    {
        "type": "function",
        "name": "getComparisonResult",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "bytes32"}],
    },
    {
        "type": "function",
        "name": "hasSubmitted",
        "stateMutability": "view",
        "inputs": [{"name": "", "type": "address"}],
        "outputs": [{"name": "", "type": "bool"}],
    },
]


# =============================================================================
# Config Types
# =============================================================================

@dataclass(frozen=True)
class FhevmConfig:
    """Encryption provider configuration (``createInstance`` input)."""
    chain_id: int = SEPOLIA_CHAIN_ID
    acl_contract_address: str = "0xf0Ffdc93b7E186bC2f8CB3dAA75D86d1930A433D"
    kms_contract_address: str = "0xbE0E383937d564D7FF0BC3b46c51f0bF8d5C311A"
    input_verifier_contract_address: str = "0xBBC1fFCdc7C316aAAd72E807D9b0272BE8F84DA0"
    verifying_contract_address_decryption: str = "0x5D8BD78e2ea6bbE41f26dFe9fdaEAa349e077478"
    verifying_contract_address_input_verification: str = "0x483b9dE06E4E4C7D35CCf5837A1668487406D955"
    gateway_chain_id: int = GATEWAY_CHAIN_ID
    relayer_url: str = DEFAULT_RELAYER_URL

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the provider's camelCase config shape."""
        return {
            "chainId": self.chain_id,
            "aclContractAddress": self.acl_contract_address,
            "kmsContractAddress": self.kms_contract_address,
            "inputVerifierContractAddress": self.input_verifier_contract_address,
            "verifyingContractAddressDecryption": self.verifying_contract_address_decryption,
            "verifyingContractAddressInputVerification": self.verifying_contract_address_input_verification,
            "gatewayChainId": self.gateway_chain_id,
            "relayerUrl": self.relayer_url,
        }


@dataclass(frozen=True)
class DeploymentConfig:
    """
    Everything the workflow needs to know about one deployment.

    Attributes:
        fhevm: Encryption provider configuration
        contract_address: Comparison contract address
        rpc_url: JSON-RPC endpoint for the ledger
        benchmark: Benchmark the contract compares against (display only)
        propagation_seconds: Countdown length after confirmation
        countdown_interval: Seconds per countdown step
        validity_days: Authorization validity window
        enforce_single_submission: Reject parties that already submitted
    """
    fhevm: FhevmConfig = field(default_factory=FhevmConfig)
    contract_address: str = DEFAULT_CONTRACT_ADDRESS
    rpc_url: str = DEFAULT_RPC_URL
    benchmark: int = BENCHMARK_FDV
    propagation_seconds: int = PROPAGATION_DELAY_SECONDS
    countdown_interval: float = COUNTDOWN_INTERVAL_SECONDS
    validity_days: int = AUTHORIZATION_VALIDITY_DAYS
    enforce_single_submission: bool = False

    def __post_init__(self):
        if self.propagation_seconds < 0:
            raise ConfigError("propagation_seconds must be >= 0")
        if self.countdown_interval <= 0:
            raise ConfigError("countdown_interval must be > 0")
        if self.validity_days < 1:
            raise ConfigError("validity_days must be >= 1")

    @property
    def chain_id(self) -> int:
        return self.fhevm.chain_id

    def with_overrides(self, **changes: Any) -> "DeploymentConfig":
        """Return a copy with some fields replaced."""
        return replace(self, **changes)


# =============================================================================
# Loading
# =============================================================================

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw.strip())
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ConfigError(f"{name} must be a boolean, got {raw!r}")


def load_config(env_file: Optional[str] = None) -> DeploymentConfig:
    """
    Build a DeploymentConfig from defaults and environment overrides.

    Args:
        env_file: Optional path to a .env file (default: search from cwd)

    Returns:
        DeploymentConfig

    Raises:
        ConfigError: If an override is malformed
    """
    load_dotenv(env_file)

    fhevm = FhevmConfig(
        relayer_url=os.getenv("VALUVAULT_RELAYER_URL", DEFAULT_RELAYER_URL),
    )
    return DeploymentConfig(
        fhevm=fhevm,
        contract_address=os.getenv("VALUVAULT_CONTRACT_ADDRESS", DEFAULT_CONTRACT_ADDRESS),
        rpc_url=os.getenv("VALUVAULT_RPC_URL", DEFAULT_RPC_URL),
        propagation_seconds=_env_int("VALUVAULT_PROPAGATION_SECONDS", PROPAGATION_DELAY_SECONDS),
        validity_days=_env_int("VALUVAULT_AUTH_VALIDITY_DAYS", AUTHORIZATION_VALIDITY_DAYS),
        enforce_single_submission=_env_bool("VALUVAULT_SINGLE_SUBMISSION", False),
    )
