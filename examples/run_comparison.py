# examples/run_comparison.py
"""
ValuVault Demo: Private FDV vs Benchmark

Runs the full submit -> wait -> authorize -> decrypt flow against the
in-memory coprocessor, contract and signer, and prints each transition.

    python examples/run_comparison.py 80 150

Each value is compared against the benchmark (100). The countdown is
shortened to keep the demo quick; the coprocessor's ACL lag is shorter than
the countdown, as it is on the real network.
"""

import asyncio
import logging
import sys

from valuvault import (
    Coprocessor,
    DeploymentConfig,
    InMemoryComparisonContract,
    InMemorySigner,
    MockFhevmRuntime,
    SessionManager,
    ComparisonWorkflow,
    WorkflowError,
)


def print_transition(old, new, event):
    print(f"  {old.name:>20} -> {new.name:<20} ({type(event).__name__})")


def print_tick(remaining):
    print(f"  ⏳ Syncing permissions... {remaining}s")


async def main(values):
    coprocessor = Coprocessor(propagation_lag=0.5)
    config = DeploymentConfig(propagation_seconds=3, countdown_interval=0.5)

    signer = InMemorySigner(chain_id=config.chain_id)
    contract = InMemoryComparisonContract(coprocessor, benchmark=config.benchmark)
    sessions = SessionManager(MockFhevmRuntime(coprocessor))

    workflow = ComparisonWorkflow(config, signer, contract, sessions, on_tick=print_tick)
    workflow.subscribe(print_transition)

    print("=" * 70)
    print(f"ValuVault: confidential comparison against benchmark {config.benchmark}")
    print(f"Party: {signer.address}")
    print("=" * 70)

    try:
        for value in values:
            print(f"\n[FDV {value}]")
            try:
                result = await workflow.run(value)
            except WorkflowError as e:
                print(f"  ❌ {e.stage}: {e}")
                continue
            print(f"  Result: {result.label}")
    finally:
        workflow.close()

    print(f"\nTransactions sent: {len(signer.transactions)}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    asyncio.run(main(sys.argv[1:] or ["80", "150"]))
