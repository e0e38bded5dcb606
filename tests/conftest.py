# tests/conftest.py
"""
Shared in-memory stack for the ValuVault tests.

Every test gets its own coprocessor, provider runtime, contract and signer.
Countdown steps are 10ms so a full propagation wait takes 50ms.
"""

import pytest

from valuvault.adapters import InMemorySigner
from valuvault.config import DeploymentConfig
from valuvault.flow import ComparisonWorkflow, SessionManager
from valuvault.ledger import InMemoryComparisonContract
from valuvault.provider import Coprocessor, MockFhevmRuntime

FAST_INTERVAL = 0.01
FAST_STEPS = 5


class Stack:
    """Coprocessor + runtime + sessions + signer + contract, wired together."""

    def __init__(
        self,
        propagation_lag: float = 0.0,
        propagation_seconds: int = FAST_STEPS,
        interval: float = FAST_INTERVAL,
        init_delay: float = 0.0,
        **config_overrides,
    ):
        self.coprocessor = Coprocessor(propagation_lag=propagation_lag)
        self.runtime = MockFhevmRuntime(self.coprocessor, init_delay=init_delay)
        self.sessions = SessionManager(self.runtime)
        self.config = DeploymentConfig(
            propagation_seconds=propagation_seconds,
            countdown_interval=interval,
            **config_overrides,
        )
        self.signer = InMemorySigner(chain_id=self.config.chain_id)
        self.contract = InMemoryComparisonContract(self.coprocessor, benchmark=self.config.benchmark)

    async def session(self, signer=None):
        return await self.sessions.initialize(self.config, signer or self.signer)

    def workflow(self, signer=None, **kwargs) -> ComparisonWorkflow:
        return ComparisonWorkflow(
            self.config,
            signer or self.signer,
            self.contract,
            self.sessions,
            **kwargs,
        )


@pytest.fixture
def stack():
    return Stack()


@pytest.fixture
def make_stack():
    return Stack
