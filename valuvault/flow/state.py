# valuvault/flow/state.py
"""
ValuVault Flow: Workflow State Machine

One tagged variant per stage, each carrying exactly the payload that stage
needs, and a single pure reducer that applies events:

    Idle ──SessionRequested──▶ Initializing ──SessionReady──▶ Ready
    Ready ──EncryptionStarted──▶ Encrypting ──InputEncrypted──▶ Submitting
    Submitting ──SubmissionConfirmed──▶ AwaitingPropagation
    AwaitingPropagation ──PropagationElapsed──▶ ReadyToDecrypt
    ReadyToDecrypt ──DecryptionStarted──▶ Decrypting
    Decrypting ──ResultDecrypted──▶ Decrypted

    any non-terminal ──StageFailed──▶ Failed
    any ──Reset──▶ Idle

``Failed`` and ``Decrypted`` are terminal for the attempt. Anything not in
the table raises StateTransitionError.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Tuple, Type, Union

from ..errors import StateTransitionError, WorkflowError
from .decryption import ComparisonResult
from .inputs import EncryptedInput
from .session import EncryptionSession
from .submission import SubmissionReceipt


# =============================================================================
# States
# =============================================================================

@dataclass(frozen=True)
class Idle:
    name = "idle"


@dataclass(frozen=True)
class Initializing:
    party: str
    name = "initializing"


@dataclass(frozen=True)
class Ready:
    session: EncryptionSession
    name = "ready"


@dataclass(frozen=True)
class Encrypting:
    session: EncryptionSession
    plaintext: int
    name = "encrypting"

    def __repr__(self) -> str:
        return "Encrypting(plaintext=<hidden>)"


@dataclass(frozen=True)
class Submitting:
    session: EncryptionSession
    encrypted_input: EncryptedInput
    name = "submitting"


@dataclass(frozen=True)
class AwaitingPropagation:
    session: EncryptionSession
    receipt: SubmissionReceipt
    name = "awaiting_propagation"


@dataclass(frozen=True)
class ReadyToDecrypt:
    session: EncryptionSession
    receipt: SubmissionReceipt
    name = "ready_to_decrypt"


@dataclass(frozen=True)
class Decrypting:
    session: EncryptionSession
    receipt: SubmissionReceipt
    handle: str
    name = "decrypting"


@dataclass(frozen=True)
class Decrypted:
    session: EncryptionSession
    receipt: SubmissionReceipt
    result: ComparisonResult
    name = "decrypted"


@dataclass(frozen=True)
class Failed:
    reason: WorkflowError
    failed_in: str
    name = "failed"


WorkflowState = Union[
    Idle, Initializing, Ready, Encrypting, Submitting,
    AwaitingPropagation, ReadyToDecrypt, Decrypting, Decrypted, Failed,
]

TERMINAL_STATES = (Decrypted, Failed)


# =============================================================================
# Events
# =============================================================================

@dataclass(frozen=True)
class SessionRequested:
    party: str


@dataclass(frozen=True)
class SessionReady:
    session: EncryptionSession


@dataclass(frozen=True)
class EncryptionStarted:
    plaintext: int

    def __repr__(self) -> str:
        return "EncryptionStarted(plaintext=<hidden>)"


@dataclass(frozen=True)
class InputEncrypted:
    encrypted_input: EncryptedInput


@dataclass(frozen=True)
class SubmissionConfirmed:
    receipt: SubmissionReceipt


@dataclass(frozen=True)
class PropagationElapsed:
    pass


@dataclass(frozen=True)
class DecryptionStarted:
    handle: str


@dataclass(frozen=True)
class ResultDecrypted:
    result: ComparisonResult


@dataclass(frozen=True)
class StageFailed:
    error: WorkflowError


@dataclass(frozen=True)
class Reset:
    pass


WorkflowEvent = Union[
    SessionRequested, SessionReady, EncryptionStarted, InputEncrypted,
    SubmissionConfirmed, PropagationElapsed, DecryptionStarted,
    ResultDecrypted, StageFailed, Reset,
]


# =============================================================================
# Reducer
# =============================================================================

_Transition = Callable[[object, object], WorkflowState]

_TRANSITIONS: Dict[Tuple[Type, Type], _Transition] = {
    (Idle, SessionRequested): lambda s, e: Initializing(party=e.party),
    (Initializing, SessionReady): lambda s, e: Ready(session=e.session),
    (Ready, EncryptionStarted): lambda s, e: Encrypting(session=s.session, plaintext=e.plaintext),
    (Encrypting, InputEncrypted): lambda s, e: Submitting(session=s.session, encrypted_input=e.encrypted_input),
    (Submitting, SubmissionConfirmed): lambda s, e: AwaitingPropagation(session=s.session, receipt=e.receipt),
    (AwaitingPropagation, PropagationElapsed): lambda s, e: ReadyToDecrypt(session=s.session, receipt=s.receipt),
    (ReadyToDecrypt, DecryptionStarted): lambda s, e: Decrypting(session=s.session, receipt=s.receipt, handle=e.handle),
    (Decrypting, ResultDecrypted): lambda s, e: Decrypted(session=s.session, receipt=s.receipt, result=e.result),
}


def reduce(state: WorkflowState, event: WorkflowEvent) -> WorkflowState:
    """
    Apply ``event`` to ``state``.

    Raises:
        StateTransitionError: Event not allowed in this state
    """
    if isinstance(event, Reset):
        return Idle()

    if isinstance(event, StageFailed):
        if isinstance(state, TERMINAL_STATES):
            raise StateTransitionError(f"Cannot fail from terminal state {state.name}")
        return Failed(reason=event.error, failed_in=state.name)

    transition = _TRANSITIONS.get((type(state), type(event)))
    if transition is None:
        raise StateTransitionError(
            f"{type(event).__name__} is not allowed in state {state.name}"
        )

    if isinstance(event, SubmissionConfirmed) and not event.receipt.confirmed:
        raise StateTransitionError("Submission receipt is not confirmed")

    return transition(state, event)


def is_terminal(state: WorkflowState) -> bool:
    return isinstance(state, TERMINAL_STATES)
