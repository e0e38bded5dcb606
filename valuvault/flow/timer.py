# valuvault/flow/timer.py
"""
ValuVault Flow: Permission-Propagation Timer

After the submission is confirmed, the ACL grants for the new result handle
take time to reach the decryption service. Decrypting before then is a
logic error: the service may refuse or fail silently on stale permission
state. The timer enforces the wait.

Guarantees:
    - starts only from a confirmed SubmissionReceipt
    - countdown decreases by one per interval, ``duration`` -> 0
    - the ready signal fires exactly once, never before
      ``receipt.confirmed_at + duration * interval`` (loop monotonic clock)
    - ``cancel()`` clears it; a cancelled timer never fires

Presentation code only sees ``on_tick(remaining)`` and the ready signal.

Usage:
    timer = PropagationTimer(duration=10, interval=1.0, on_tick=print)
    timer.start(receipt)
    signal = await timer.wait()
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from ..config import COUNTDOWN_INTERVAL_SECONDS, PROPAGATION_DELAY_SECONDS
from ..errors import StateTransitionError
from .submission import SubmissionReceipt

logger = logging.getLogger(__name__)

TickCallback = Callable[[int], None]
ReadyCallback = Callable[["ReadySignal"], None]


@dataclass(frozen=True)
class ReadySignal:
    """Emitted once when propagation is complete."""
    fired_at: float
    receipt: SubmissionReceipt


class PropagationTimer:
    """Cancellable countdown that gates decryption."""

    def __init__(
        self,
        duration: int = PROPAGATION_DELAY_SECONDS,
        interval: float = COUNTDOWN_INTERVAL_SECONDS,
        on_tick: Optional[TickCallback] = None,
        on_ready: Optional[ReadyCallback] = None,
    ):
        if duration < 0:
            raise ValueError("duration must be >= 0")
        if interval <= 0:
            raise ValueError("interval must be > 0")
        self._duration = duration
        self._interval = interval
        self._on_tick = on_tick
        self._on_ready = on_ready

        self._remaining = duration
        self._task: Optional[asyncio.Task] = None
        self._future: Optional[asyncio.Future] = None
        self._signal: Optional[ReadySignal] = None
        self._cancelled = False

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def remaining(self) -> int:
        return self._remaining

    @property
    def total_seconds(self) -> float:
        return self._duration * self._interval

    @property
    def started(self) -> bool:
        return self._task is not None

    @property
    def fired(self) -> bool:
        return self._signal is not None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def signal(self) -> Optional[ReadySignal]:
        return self._signal

    # =========================================================================
    # Control
    # =========================================================================

    def start(self, receipt: SubmissionReceipt) -> None:
        """
        Start the countdown from ``receipt.confirmed_at``.

        Raises:
            StateTransitionError: Receipt not confirmed, or timer reused
        """
        if receipt is None or not receipt.confirmed:
            raise StateTransitionError("Propagation wait requires a confirmed submission")
        if self._task is not None or self._cancelled:
            raise StateTransitionError("Propagation timer can only be started once")

        loop = asyncio.get_running_loop()
        self._future = loop.create_future()
        self._task = loop.create_task(self._run(receipt))
        logger.info(f"⏳ Syncing permissions... {self.total_seconds:g}s")

    async def _run(self, receipt: SubmissionReceipt) -> None:
        loop = asyncio.get_running_loop()
        deadline = receipt.confirmed_at + self._duration * self._interval
        try:
            while self._remaining > 0:
                # Steps are anchored on the deadline so drift never fires early
                step_at = deadline - (self._remaining - 1) * self._interval
                delay = step_at - loop.time()
                if delay > 0:
                    await asyncio.sleep(delay)
                self._remaining -= 1
                if self._on_tick is not None:
                    self._on_tick(self._remaining)

            # The loop may wake up to one clock resolution early
            while loop.time() < deadline:
                await asyncio.sleep(deadline - loop.time())

            self._fire(ReadySignal(fired_at=loop.time(), receipt=receipt))
        except asyncio.CancelledError:
            if self._future is not None and not self._future.done():
                self._future.cancel()
            raise
        except Exception as e:
            if self._future is not None and not self._future.done():
                self._future.set_exception(e)
            else:
                logger.exception("Propagation timer callback failed after the ready signal")

    def _fire(self, signal: ReadySignal) -> None:
        if self._signal is not None or self._cancelled:
            return
        self._signal = signal
        if self._future is not None and not self._future.done():
            self._future.set_result(signal)
        logger.info("✅ Permissions synced, ready to decrypt")
        if self._on_ready is not None:
            self._on_ready(signal)

    async def wait(self) -> ReadySignal:
        """
        Suspend until the ready signal.

        Raises:
            StateTransitionError: Timer never started
            asyncio.CancelledError: Timer was cancelled
        """
        if self._future is None:
            raise StateTransitionError("Propagation timer was not started")
        return await asyncio.shield(self._future)

    def cancel(self) -> None:
        """Clear the timer; it will never fire."""
        if self._signal is not None:
            return
        self._cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
        if self._future is not None and not self._future.done():
            self._future.cancel()


async def await_propagation(
    receipt: SubmissionReceipt,
    duration: int = PROPAGATION_DELAY_SECONDS,
    interval: float = COUNTDOWN_INTERVAL_SECONDS,
    on_tick: Optional[TickCallback] = None,
) -> ReadySignal:
    """Start a timer for ``receipt`` and wait for it; cancels on abandonment."""
    timer = PropagationTimer(duration=duration, interval=interval, on_tick=on_tick)
    timer.start(receipt)
    try:
        return await timer.wait()
    finally:
        if not timer.fired:
            timer.cancel()
