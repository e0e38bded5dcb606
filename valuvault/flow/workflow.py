# valuvault/flow/workflow.py
"""
ValuVault Flow: Comparison Workflow

Drives one party's attempt through every stage:

    connect()          Idle -> Initializing -> Ready
    submit(value)      Ready -> Encrypting -> Submitting -> AwaitingPropagation
    wait_until_ready() AwaitingPropagation -> ReadyToDecrypt
    decrypt()          ReadyToDecrypt -> Decrypting -> Decrypted
    run(value)         all of the above

The workflow owns its state and is the only caller of ``reduce``. A stage
failure moves the attempt to ``Failed`` and re-raises the error; nothing is
retried. ``submit``/``run`` on a terminal state start a fresh attempt.

Usage:
    workflow = ComparisonWorkflow(config, signer, contract, SessionManager(runtime))
    result = await workflow.run(80)
    print(result.label)  # "Below Benchmark"
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional, Tuple, Union

from ..adapters.base import Signer
from ..config import DeploymentConfig
from ..errors import (
    DecryptionError,
    InitializationError,
    StateTransitionError,
    ValidationError,
    WorkflowError,
)
from ..ledger.contract import ZERO_HANDLE, ComparisonContract
from ..provider.base import normalize_handle
from .authorization import AuthorizationBuilder
from .decryption import ComparisonResult, DecryptionRequester
from .inputs import EncryptedInputBuilder, parse_plaintext
from .session import EncryptionSession, SessionManager
from .state import (
    AwaitingPropagation,
    DecryptionStarted,
    Decrypted,
    EncryptionStarted,
    Failed,
    Idle,
    InputEncrypted,
    PropagationElapsed,
    Ready,
    ReadyToDecrypt,
    Reset,
    ResultDecrypted,
    SessionReady,
    SessionRequested,
    StageFailed,
    SubmissionConfirmed,
    WorkflowEvent,
    WorkflowState,
    is_terminal,
    reduce,
)
from .submission import SubmissionController, SubmissionReceipt
from .timer import PropagationTimer

logger = logging.getLogger(__name__)

TransitionCallback = Callable[[WorkflowState, WorkflowState, WorkflowEvent], None]


class ComparisonWorkflow:
    """Single-party submission and decryption flow."""

    def __init__(
        self,
        config: DeploymentConfig,
        signer: Signer,
        contract: ComparisonContract,
        sessions: SessionManager,
        on_tick: Optional[Callable[[int], None]] = None,
    ):
        self._config = config
        self._signer = signer
        self._contract = contract
        self._sessions = sessions
        self._on_tick = on_tick

        self._inputs = EncryptedInputBuilder()
        self._submission = SubmissionController(
            contract, enforce_single_submission=config.enforce_single_submission
        )
        self._authorizer = AuthorizationBuilder()
        self._requester = DecryptionRequester()

        self._state: WorkflowState = Idle()
        self._observers: List[TransitionCallback] = []
        self._timer: Optional[PropagationTimer] = None
        self._session_watch: Optional[Tuple[EncryptionSession, Callable]] = None
        self._attempt = 0

    # =========================================================================
    # State
    # =========================================================================

    @property
    def state(self) -> WorkflowState:
        return self._state

    @property
    def countdown(self) -> int:
        """Seconds-steps left on the propagation timer (0 if none)."""
        return self._timer.remaining if self._timer is not None else 0

    @property
    def result(self) -> Optional[ComparisonResult]:
        return self._state.result if isinstance(self._state, Decrypted) else None

    def subscribe(self, callback: TransitionCallback) -> None:
        self._observers.append(callback)

    def _dispatch(self, event: WorkflowEvent) -> WorkflowState:
        old = self._state
        new = reduce(old, event)
        self._state = new
        logger.debug(f"Workflow {old.name} -> {new.name}")
        for callback in self._observers:
            callback(old, new, event)
        return new

    def _fail(self, error: WorkflowError, attempt: int) -> None:
        if attempt == self._attempt and not is_terminal(self._state):
            logger.warning(f"Workflow failed in {self._state.name}: {error}")
            self._dispatch(StageFailed(error))

    def _check_attempt(self, attempt: int) -> None:
        if attempt != self._attempt:
            raise StateTransitionError("Attempt was abandoned")

    def _cancel_timer(self) -> None:
        self._unwatch_session()
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _watch_session(self, session: EncryptionSession, attempt: int) -> None:
        """Fail the attempt and clear the timer if ``session`` closes mid-wait."""

        def on_close(closed: EncryptionSession) -> None:
            if attempt != self._attempt or not isinstance(self._state, AwaitingPropagation):
                return
            self._cancel_timer()
            self._fail(
                InitializationError(f"Session {closed.session_id} closed before permissions propagated"),
                attempt,
            )

        self._unwatch_session()
        session.add_close_listener(on_close)
        self._session_watch = (session, on_close)

    def _unwatch_session(self) -> None:
        if self._session_watch is not None:
            session, listener = self._session_watch
            session.remove_close_listener(listener)
            self._session_watch = None

    # =========================================================================
    # Stages
    # =========================================================================

    async def connect(self) -> EncryptionSession:
        """Ensure a ready session (Idle -> Ready)."""
        if isinstance(self._state, Ready):
            return self._state.session
        if not isinstance(self._state, Idle):
            raise StateTransitionError(f"Cannot connect from state {self._state.name}")

        attempt = self._attempt
        self._dispatch(SessionRequested(party=self._signer.address))
        try:
            session = await self._sessions.initialize(self._config, self._signer)
        except WorkflowError as e:
            self._fail(e, attempt)
            raise
        self._check_attempt(attempt)
        self._dispatch(SessionReady(session=session))
        return session

    async def submit(self, value: Union[int, str]) -> SubmissionReceipt:
        """
        Encrypt and submit ``value``; starts the propagation timer.

        Raises:
            ValidationError, InitializationError, EncryptionError, SubmissionError
        """
        if is_terminal(self._state):
            self.reset()
        if isinstance(self._state, Idle):
            await self.connect()
        if not isinstance(self._state, Ready):
            raise StateTransitionError(f"Cannot submit from state {self._state.name}")

        attempt = self._attempt
        session = self._state.session
        try:
            plaintext = parse_plaintext(value)
        except ValidationError as e:
            self._fail(e, attempt)
            raise

        self._dispatch(EncryptionStarted(plaintext=plaintext))
        try:
            encrypted = await self._inputs.build(
                session, self._contract.address, self._signer.address, plaintext
            )
            self._check_attempt(attempt)
            self._dispatch(InputEncrypted(encrypted_input=encrypted))

            receipt = await self._submission.submit(encrypted, self._signer)
            self._check_attempt(attempt)
        except WorkflowError as e:
            self._fail(e, attempt)
            raise

        self._dispatch(SubmissionConfirmed(receipt=receipt))
        self._timer = PropagationTimer(
            duration=self._config.propagation_seconds,
            interval=self._config.countdown_interval,
            on_tick=self._on_tick,
        )
        self._timer.start(receipt)
        self._watch_session(session, attempt)
        return receipt

    async def wait_until_ready(self) -> None:
        """
        Block until the propagation timer fires.

        Raises:
            StateTransitionError: No wait in progress, or the attempt was reset
            InitializationError: The session closed before the timer fired
        """
        if isinstance(self._state, ReadyToDecrypt):
            return
        if not isinstance(self._state, AwaitingPropagation) or self._timer is None:
            raise StateTransitionError(f"Nothing to wait for in state {self._state.name}")

        attempt = self._attempt
        try:
            await self._timer.wait()
        except asyncio.CancelledError:
            if attempt != self._attempt:
                raise StateTransitionError("Attempt was abandoned")
            if isinstance(self._state, Failed):
                raise self._state.reason
            raise
        self._check_attempt(attempt)
        self._unwatch_session()
        self._dispatch(PropagationElapsed())

    async def decrypt(self) -> ComparisonResult:
        """
        Authorize and decrypt the latest comparison outcome.

        Raises:
            StateTransitionError: Called before propagation completed
            AuthorizationError, DecryptionError
        """
        if isinstance(self._state, AwaitingPropagation):
            raise StateTransitionError("Permissions are still propagating; wait before decrypting")
        if not isinstance(self._state, ReadyToDecrypt):
            raise StateTransitionError(f"Cannot decrypt from state {self._state.name}")

        attempt = self._attempt
        session = self._state.session
        receipt = self._state.receipt
        try:
            handle = await self._fetch_result_handle(session, receipt)
        except WorkflowError as e:
            self._fail(e, attempt)
            raise
        self._check_attempt(attempt)
        self._dispatch(DecryptionStarted(handle=handle))

        try:
            grant = await self._authorizer.authorize(
                session,
                self._signer,
                handle,
                self._contract.address,
                self._config.validity_days,
            )
            self._check_attempt(attempt)
            result = await self._requester.decrypt(session, grant, handle, self._contract.address)
            self._check_attempt(attempt)
        except WorkflowError as e:
            self._fail(e, attempt)
            raise

        self._dispatch(ResultDecrypted(result=result))
        logger.info(f"Comparison result: {result.label}")
        return result

    async def _fetch_result_handle(self, session: EncryptionSession, receipt: SubmissionReceipt) -> str:
        if not session.ready or receipt.session_id != session.session_id:
            raise DecryptionError("Submission belongs to a previous session")
        try:
            raw = await self._contract.get_comparison_result(self._signer.address)
            handle = normalize_handle(raw)
        except Exception as e:
            raise DecryptionError("Failed to read comparison result handle", e) from e
        if handle == ZERO_HANDLE:
            raise DecryptionError("No comparison result recorded for this address")
        return handle

    async def run(self, value: Union[int, str]) -> ComparisonResult:
        """Run a complete attempt for ``value``."""
        await self.submit(value)
        await self.wait_until_ready()
        return await self.decrypt()

    # =========================================================================
    # Teardown
    # =========================================================================

    def reset(self) -> None:
        """Abandon the current attempt and return to Idle."""
        self._cancel_timer()
        self._attempt += 1
        self._dispatch(Reset())

    def close(self) -> None:
        """Reset and tear down the party's sessions (disconnect)."""
        self.reset()
        self._sessions.close(self._signer.address)
