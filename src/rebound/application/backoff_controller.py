"""Backoff controller - retries an operation with exponential backoff and full jitter"""

import asyncio
import inspect
import logging
import threading
import time
from typing import Any, Callable, Optional

from tenacity import RetryCallState

from rebound.domain.config.controller import ControllerConfig
from rebound.domain.errors import ConfigurationError, ControllerStateError
from rebound.domain.models.outcome import Cancelled, GaveUp, GiveUpReason, Outcome, Success
from rebound.infrastructure.retry import RetryCancelled, build_retrying

logger = logging.getLogger(__name__)


def _operation_name(operation: Callable) -> str:
    return getattr(operation, "__qualname__", None) or getattr(operation, "__name__", None) or repr(operation)


class BackoffController:
    """Runs one retry sequence at a time with its own attempt counter and start time.

    Each logical retry sequence needs its own controller (or a reset() between
    sequences). Attempts never overlap: the only suspension point is the
    jittered delay between a failure and the next attempt, which cancel()
    interrupts from any thread.
    """

    def __init__(
        self,
        config: Optional[ControllerConfig] = None,
        *,
        rng: Optional[Any] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        """Initialize controller

        Args:
            config: Controller configuration (defaults if None)
            rng: Random source with a uniform(a, b) method (module random if None)
            clock: Monotonic clock in seconds (time.monotonic if None)
        """
        self._config = config or ControllerConfig()
        self._rng = rng
        self._clock = clock or time.monotonic
        self._cancel_event = threading.Event()
        self._lock = threading.Lock()
        self._async_wakeup: Optional[tuple] = None
        self._attempt_count = 0
        self._first_attempt_at: Optional[float] = None
        self._running = False
        self._finished = False
        self._operation_name = ""
        self._stop_reason: Optional[GiveUpReason] = None
        self._gave_up: Optional[GaveUp] = None

    @property
    def config(self) -> ControllerConfig:
        return self._config

    @property
    def attempt_count(self) -> int:
        """Number of attempts made in the current sequence"""
        return self._attempt_count

    @property
    def first_attempt_at(self) -> Optional[float]:
        """Clock reading taken at the first attempt (None before it)"""
        return self._first_attempt_at

    @property
    def elapsed_millis(self) -> float:
        """Milliseconds since the first attempt (0 before it)"""
        if self._first_attempt_at is None:
            return 0.0
        return (self._clock() - self._first_attempt_at) * 1000.0

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        """Cancel the sequence; a pending delay is interrupted immediately.

        Safe to call from any thread. No attempt starts after cancellation.
        """
        self._cancel_event.set()
        wakeup = self._async_wakeup
        if wakeup is not None:
            loop, event = wakeup
            try:
                loop.call_soon_threadsafe(event.set)
            except RuntimeError:
                # Loop already closed, nothing left to wake
                logger.debug("Event loop closed before cancellation wakeup")

    def reset(self) -> None:
        """Discard counters, start time and cancellation to run a new sequence

        Raises:
            ControllerStateError: If a sequence is still running
        """
        with self._lock:
            if self._running:
                raise ControllerStateError("Cannot reset a controller while its sequence is running")
            self._attempt_count = 0
            self._first_attempt_at = None
            self._finished = False
            self._stop_reason = None
            self._gave_up = None
            self._cancel_event.clear()

    def run(self, operation: Callable[[], Any]) -> Outcome:
        """Run the operation until it succeeds, a ceiling is hit, or cancel() is called

        Args:
            operation: Zero-argument callable; raising any Exception is a failure

        Returns:
            Success, GaveUp or Cancelled

        Raises:
            ConfigurationError: If operation is not callable or is a coroutine function
            ControllerStateError: If the controller is running or already finished
        """
        if inspect.iscoroutinefunction(operation):
            raise ConfigurationError(
                f"Operation {_operation_name(operation)} is a coroutine function; use run_async()"
            )
        self._begin(operation)
        try:
            retrying = build_retrying(
                self._config,
                stop=self._should_give_up,
                sleep=self._sleep,
                rng=self._rng,
                before_sleep=self._log_failed_attempt,
                retry_error_callback=self._give_up,
            )
            try:
                result = retrying(self._attempt_sync, operation)
            except RetryCancelled:
                return self._cancelled_outcome()
            return self._final_outcome(result)
        finally:
            self._end()

    async def run_async(self, operation: Callable[[], Any]) -> Outcome:
        """Async variant of run(); operation may be a coroutine function

        Delays are awaited on the running loop, so other tasks keep running.
        """
        self._begin(operation)
        wake = asyncio.Event()
        self._async_wakeup = (asyncio.get_running_loop(), wake)
        if self._cancel_event.is_set():
            wake.set()

        async def _sleep(seconds: float) -> None:
            try:
                await asyncio.wait_for(wake.wait(), timeout=seconds)
            except asyncio.TimeoutError:
                return
            raise RetryCancelled()

        async def _attempt() -> Any:
            result = self._attempt(operation)
            if inspect.isawaitable(result):
                result = await result
            return result

        try:
            retrying = build_retrying(
                self._config,
                stop=self._should_give_up,
                sleep=_sleep,
                rng=self._rng,
                before_sleep=self._log_failed_attempt,
                retry_error_callback=self._give_up,
                use_async=True,
            )
            try:
                result = await retrying(_attempt)
            except RetryCancelled:
                return self._cancelled_outcome()
            return self._final_outcome(result)
        finally:
            self._async_wakeup = None
            self._end()

    def _begin(self, operation: Any) -> None:
        if operation is None or not callable(operation):
            raise ConfigurationError(
                f"Operation must be callable, got {type(operation).__name__}"
            )
        with self._lock:
            if self._running:
                raise ControllerStateError("Controller is already running a sequence")
            if self._finished:
                raise ControllerStateError(
                    "Controller sequence already finished; call reset() or create a new controller"
                )
            self._running = True

        self._operation_name = _operation_name(operation)
        if self._first_attempt_at is None:
            self._first_attempt_at = self._clock()
        config = self._config
        logger.info(
            f"Controller called with: op={self._operation_name}, "
            f"backoff={config.base_backoff_millis}ms, "
            f"max_attempts={config.max_attempts}, "
            f"max_elapsed={config.max_elapsed_millis}ms, "
            f"jitter={config.jitter_percent}%"
        )

    def _end(self) -> None:
        with self._lock:
            self._running = False
            self._finished = True

    def _attempt(self, operation: Callable[[], Any]) -> Any:
        if self._cancel_event.is_set():
            raise RetryCancelled()
        self._attempt_count += 1
        logger.info(
            f"Attempting {self._operation_name} "
            f"({self._attempt_count}/{self._config.max_attempts})"
        )
        return operation()

    def _attempt_sync(self, operation: Callable[[], Any]) -> Any:
        result = self._attempt(operation)
        if inspect.isawaitable(result):
            if inspect.iscoroutine(result):
                result.close()
            raise ConfigurationError(
                f"Operation {self._operation_name} returned an awaitable; use run_async()"
            )
        return result

    def _give_up_reason(self, upcoming_sleep: float = 0.0) -> Optional[GiveUpReason]:
        """Ceiling that blocks the next attempt, if any

        The elapsed ceiling is checked against the time at which the next
        attempt would start, i.e. now plus the upcoming delay.
        """
        if self._attempt_count >= self._config.max_attempts:
            return GiveUpReason.MAX_ATTEMPTS_EXCEEDED
        projected = self.elapsed_millis + upcoming_sleep * 1000.0
        if projected > self._config.max_elapsed_millis:
            return GiveUpReason.MAX_ELAPSED_TIME_EXCEEDED
        return None

    def _should_give_up(self, retry_state: RetryCallState) -> bool:
        self._stop_reason = self._give_up_reason(retry_state.upcoming_sleep)
        return self._stop_reason is not None

    def _sleep(self, seconds: float) -> None:
        # Event.wait returns True as soon as cancel() is called
        if self._cancel_event.wait(timeout=min(seconds, threading.TIMEOUT_MAX)):
            raise RetryCancelled()

    def _log_failed_attempt(self, retry_state: RetryCallState) -> None:
        exception = retry_state.outcome.exception() if retry_state.outcome else None
        delay_ms = retry_state.next_action.sleep * 1000.0 if retry_state.next_action else 0.0
        remaining = self._config.max_attempts - self._attempt_count
        logger.warning(
            f"Attempt {self._attempt_count} of {self._operation_name} failed: {exception}. "
            f"Waiting {delay_ms:.1f}ms before next attempt, "
            f"{remaining} attempt(s) left before giving up"
        )

    def _give_up(self, retry_state: RetryCallState) -> None:
        reason = self._stop_reason
        last_error = retry_state.outcome.exception() if retry_state.outcome else None
        self._gave_up = GaveUp(
            reason=reason,
            attempts_made=self._attempt_count,
            elapsed_millis=self.elapsed_millis,
            last_error=last_error,
        )
        if self._gave_up.reason == GiveUpReason.MAX_ATTEMPTS_EXCEEDED:
            ceiling = f"max attempts ({self._config.max_attempts})"
        else:
            ceiling = f"max elapsed time ({self._config.max_elapsed_millis}ms)"
        logger.warning(
            f"Giving up on {self._operation_name}: {ceiling} reached after "
            f"{self._attempt_count} attempt(s) in {self._gave_up.elapsed_millis:.0f}ms"
        )

    def _final_outcome(self, result: Any) -> Outcome:
        if self._gave_up is not None:
            return self._gave_up
        logger.info(f"{self._operation_name} succeeded after {self._attempt_count} attempt(s)")
        return Success(
            attempts_made=self._attempt_count,
            elapsed_millis=self.elapsed_millis,
            result=result,
        )

    def _cancelled_outcome(self) -> Cancelled:
        logger.info(f"Retry sequence for {self._operation_name} cancelled after {self._attempt_count} attempt(s)")
        return Cancelled(attempts_made=self._attempt_count, elapsed_millis=self.elapsed_millis)


def run(operation: Callable[[], Any], config: Optional[ControllerConfig] = None) -> Outcome:
    """Run operation under a fresh BackoffController

    Args:
        operation: Zero-argument callable to retry
        config: Controller configuration (defaults if None)

    Returns:
        Success, GaveUp or Cancelled
    """
    return BackoffController(config).run(operation)
