# tests/test_workflow.py
"""
ValuVault Flow: End-to-End Workflow Tests

Scenarios:
    1. Submit below / above the benchmark and decrypt the outcome
    2. Sequential submissions by the same party
    3. Stage failures land in Failed; a fresh attempt succeeds
    4. Decryption is gated on the propagation wait
    5. Reset / close cancel the wait and tear down the session
"""

import asyncio

import pytest

from valuvault.adapters import InMemorySigner
from valuvault.errors import (
    AuthorizationError,
    DecryptionError,
    InitializationError,
    SessionBusyError,
    StateTransitionError,
    SubmissionError,
    ValidationError,
)
from valuvault.flow import (
    AwaitingPropagation,
    Decrypted,
    Failed,
    Idle,
    PropagationElapsed,
    Ready,
    ReadyToDecrypt,
)


def record_transitions(workflow):
    seen = []
    workflow.subscribe(lambda old, new, event: seen.append((old.name, new.name)))
    return seen


# =============================================================================
# Scenario 1: Outcomes
# =============================================================================

def test_below_benchmark(stack):
    workflow = stack.workflow()
    result = asyncio.run(workflow.run(80))

    assert result.label == "Below Benchmark"
    assert result.above_benchmark is False
    assert isinstance(workflow.state, Decrypted)
    assert workflow.result is result


def test_above_benchmark(stack):
    result = asyncio.run(stack.workflow().run("150"))
    assert result.label == "Above Benchmark"
    assert result.raw_value == 1


def test_transition_sequence(stack):
    workflow = stack.workflow()
    seen = record_transitions(workflow)
    asyncio.run(workflow.run(150))

    assert seen == [
        ("idle", "initializing"),
        ("initializing", "ready"),
        ("ready", "encrypting"),
        ("encrypting", "submitting"),
        ("submitting", "awaiting_propagation"),
        ("awaiting_propagation", "ready_to_decrypt"),
        ("ready_to_decrypt", "decrypting"),
        ("decrypting", "decrypted"),
    ]


def test_countdown_ticks(stack):
    ticks = []
    asyncio.run(stack.workflow(on_tick=ticks.append).run(80))
    assert ticks == [4, 3, 2, 1, 0]


# =============================================================================
# Scenario 2: Sequential Submissions
# =============================================================================

def test_second_submission_decrypts_latest_result(stack):
    workflow = stack.workflow()

    async def scenario():
        first = await workflow.run(80)
        second = await workflow.run(150)
        return first, second

    first, second = asyncio.run(scenario())

    assert first.above_benchmark is False
    assert second.above_benchmark is True
    assert first.handle != second.handle
    assert stack.contract.submissions == 2
    # one session, one keypair per attempt
    assert len(stack.runtime.instances) == 1
    assert stack.runtime.instances[0].keypairs_generated == 2


def test_single_submission_gate(make_stack):
    stack = make_stack(enforce_single_submission=True)
    workflow = stack.workflow()

    async def scenario():
        await workflow.run(80)
        await workflow.run(150)

    with pytest.raises(SubmissionError):
        asyncio.run(scenario())
    assert isinstance(workflow.state, Failed)
    assert workflow.state.failed_in == "submitting"


def test_two_parties_are_independent(stack):
    other = InMemorySigner(chain_id=stack.config.chain_id)

    async def scenario():
        return await asyncio.gather(
            stack.workflow().run(80),
            stack.workflow(signer=other).run(150),
        )

    mine, theirs = asyncio.run(scenario())
    assert mine.above_benchmark is False
    assert theirs.above_benchmark is True


# =============================================================================
# Scenario 3: Failures
# =============================================================================

def test_invalid_value_fails_before_encryption(stack):
    workflow = stack.workflow()

    with pytest.raises(ValidationError):
        asyncio.run(workflow.submit("abc"))

    assert isinstance(workflow.state, Failed)
    assert workflow.state.failed_in == "ready"
    assert stack.runtime.instances[0].encrypt_calls == 0
    assert stack.signer.transactions == []


def test_declined_authorization_then_retry(stack):
    workflow = stack.workflow()
    stack.signer.decline_signatures = True

    with pytest.raises(AuthorizationError):
        asyncio.run(workflow.run(150))

    state = workflow.state
    assert isinstance(state, Failed)
    assert isinstance(state.reason, AuthorizationError)
    assert state.failed_in == "decrypting"
    assert workflow.result is None
    assert stack.signer.signatures == []

    stack.signer.decline_signatures = False
    result = asyncio.run(workflow.run(150))
    assert result.above_benchmark is True
    assert isinstance(workflow.state, Decrypted)


def test_rejected_transaction_starts_no_timer(stack):
    workflow = stack.workflow()
    stack.signer.decline_transactions = True

    with pytest.raises(SubmissionError):
        asyncio.run(workflow.submit(80))

    assert isinstance(workflow.state, Failed)
    assert workflow.state.failed_in == "submitting"
    assert workflow.countdown == 0
    with pytest.raises(StateTransitionError):
        asyncio.run(workflow.wait_until_ready())


def test_network_mismatch_fails_initialization(stack):
    stack.signer.switch_chain(1)
    workflow = stack.workflow()

    with pytest.raises(InitializationError):
        asyncio.run(workflow.run(80))
    assert workflow.state.failed_in == "initializing"

    stack.signer.switch_chain(stack.config.chain_id)
    assert asyncio.run(workflow.run(80)).above_benchmark is False


def test_concurrent_connect_same_party(make_stack):
    stack = make_stack(init_delay=0.05)
    first, second = stack.workflow(), stack.workflow()

    async def scenario():
        return await asyncio.gather(first.connect(), second.connect(), return_exceptions=True)

    results = asyncio.run(scenario())
    assert sum(isinstance(r, SessionBusyError) for r in results) == 1
    assert len(stack.runtime.instances) == 1
    assert {type(first.state), type(second.state)} == {Ready, Failed}


# =============================================================================
# Scenario 4: Propagation Gate
# =============================================================================

def test_decrypt_before_wait_is_refused_locally(stack):
    workflow = stack.workflow()

    async def scenario():
        await workflow.submit(150)
        with pytest.raises(StateTransitionError):
            await workflow.decrypt()
        assert isinstance(workflow.state, AwaitingPropagation)
        await workflow.wait_until_ready()
        assert isinstance(workflow.state, ReadyToDecrypt)
        return await workflow.decrypt()

    assert asyncio.run(scenario()).above_benchmark is True
    assert stack.runtime.kms.requests and len(stack.runtime.kms.requests) == 1


def test_skipping_the_wait_is_refused_by_service(make_stack):
    # ACL lag longer than a zero-length countdown
    stack = make_stack(propagation_lag=60.0, propagation_seconds=0)
    workflow = stack.workflow()

    with pytest.raises(DecryptionError):
        asyncio.run(workflow.run(150))
    assert workflow.state.failed_in == "decrypting"


def test_wait_respects_confirmation_time(stack):
    workflow = stack.workflow()

    async def scenario():
        receipt = await workflow.submit(80)
        await workflow.wait_until_ready()
        return receipt, asyncio.get_running_loop().time()

    receipt, ready_at = asyncio.run(scenario())
    total = stack.config.propagation_seconds * stack.config.countdown_interval
    assert ready_at >= receipt.confirmed_at + total


# =============================================================================
# Scenario 5: Reset / Close
# =============================================================================

def test_reset_cancels_wait(stack):
    workflow = stack.workflow()
    events = []
    workflow.subscribe(lambda old, new, event: events.append(event))

    async def scenario():
        await workflow.submit(80)
        waiter = asyncio.ensure_future(workflow.wait_until_ready())
        await asyncio.sleep(0)
        workflow.reset()
        with pytest.raises(StateTransitionError):
            await waiter
        await asyncio.sleep(stack.config.countdown_interval * (stack.config.propagation_seconds + 2))

    asyncio.run(scenario())
    assert isinstance(workflow.state, Idle)
    assert not any(isinstance(e, PropagationElapsed) for e in events)
    assert workflow.countdown == 0


def test_close_tears_down_session(stack):
    workflow = stack.workflow()

    async def scenario():
        await workflow.run(80)
        workflow.close()
        assert isinstance(workflow.state, Idle)
        assert stack.sessions.get(stack.signer.address, stack.config.chain_id) is None
        return await workflow.run(150)

    assert asyncio.run(scenario()).above_benchmark is True
    assert len(stack.runtime.instances) == 2


def test_session_closed_during_wait_clears_timer(stack):
    workflow = stack.workflow()
    events = []
    workflow.subscribe(lambda old, new, event: events.append(event))

    async def scenario():
        await workflow.submit(150)
        waiter = asyncio.ensure_future(workflow.wait_until_ready())
        await asyncio.sleep(0)
        stack.sessions.close(stack.signer.address)
        with pytest.raises(InitializationError):
            await waiter
        await asyncio.sleep(stack.config.countdown_interval * (stack.config.propagation_seconds + 2))

    asyncio.run(scenario())
    state = workflow.state
    assert isinstance(state, Failed)
    assert isinstance(state.reason, InitializationError)
    assert state.failed_in == "awaiting_propagation"
    assert not any(isinstance(e, PropagationElapsed) for e in events)
    assert workflow.countdown == 0


def test_disconnect_without_waiter_clears_timer(stack):
    workflow = stack.workflow()

    async def scenario():
        await workflow.submit(80)
        stack.sessions.close_all()
        await asyncio.sleep(stack.config.countdown_interval * (stack.config.propagation_seconds + 2))
        with pytest.raises(StateTransitionError):
            await workflow.wait_until_ready()

    asyncio.run(scenario())
    assert workflow.state.failed_in == "awaiting_propagation"
    assert stack.runtime.kms.requests == []

    # a fresh attempt opens a new session
    assert asyncio.run(workflow.run(150)).above_benchmark is True
    assert len(stack.runtime.instances) == 2


def test_session_closed_after_wait(stack):
    workflow = stack.workflow()

    async def scenario():
        await workflow.submit(150)
        await workflow.wait_until_ready()
        stack.sessions.close(stack.signer.address)
        await workflow.decrypt()

    with pytest.raises(DecryptionError) as excinfo:
        asyncio.run(scenario())
    assert "previous session" in str(excinfo.value)
    assert workflow.state.failed_in == "ready_to_decrypt"


def test_unicode_digits_fail_the_attempt(stack):
    workflow = stack.workflow()

    with pytest.raises(ValidationError):
        asyncio.run(workflow.submit("²"))
    assert isinstance(workflow.state, Failed)
    assert workflow.state.failed_in == "ready"
    assert stack.runtime.instances[0].encrypt_calls == 0


def test_stage_methods_guard_order(stack):
    workflow = stack.workflow()
    with pytest.raises(StateTransitionError):
        asyncio.run(workflow.decrypt())
    with pytest.raises(StateTransitionError):
        asyncio.run(workflow.wait_until_ready())
    assert isinstance(workflow.state, Idle)
