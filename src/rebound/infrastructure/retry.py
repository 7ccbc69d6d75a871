"""Retry strategies built on tenacity.

Delays use full jitter: once attempt ``n`` has failed, the wait before the
next attempt is drawn uniformly from
``[0, jitter_percent / 100 * base_backoff_millis * 2 ** n]``.
"""

from __future__ import annotations

import math
import random
import sys
from typing import Any, Callable, Optional, Union

from tenacity import AsyncRetrying, RetryCallState, Retrying, retry_if_exception
from tenacity.wait import wait_base

from rebound.domain.config.controller import ControllerConfig
from rebound.domain.errors import ConfigurationError


class RetryCancelled(Exception):
    """Signals that the caller cancelled a pending retry sequence."""

    pass


def delay_ceiling_millis(attempt: int, base_backoff_millis: float, jitter_percent: float) -> float:
    """Upper bound of the jittered delay that follows a failed attempt.

    Args:
        attempt: 1-indexed number of the attempt that just failed
        base_backoff_millis: Backoff base in milliseconds
        jitter_percent: Share of the exponential delay used as the ceiling

    Returns:
        Ceiling in milliseconds
    """
    scale = (jitter_percent / 100.0) * base_backoff_millis
    if scale <= 0:
        return 0.0
    try:
        return math.ldexp(scale, attempt)
    except OverflowError:
        # Past ~2**1024 the ceiling stays at the largest finite float
        return sys.float_info.max


def compute_delay_millis(
    attempt: int,
    base_backoff_millis: float,
    jitter_percent: float,
    rng: Optional[random.Random] = None,
) -> float:
    """Draw a delay uniformly from [0, ceiling] for the given attempt."""
    ceiling = delay_ceiling_millis(attempt, base_backoff_millis, jitter_percent)
    source = rng if rng is not None else random
    delay = source.uniform(0.0, ceiling)
    # uniform() may round past b for some float inputs
    return min(max(delay, 0.0), ceiling)


class wait_full_jitter(wait_base):
    """Tenacity wait strategy for full jitter with a configurable ceiling."""

    def __init__(
        self,
        base_backoff_millis: float,
        jitter_percent: float,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.base_backoff_millis = base_backoff_millis
        self.jitter_percent = jitter_percent
        self.rng = rng

    def __call__(self, retry_state: RetryCallState) -> float:
        delay = compute_delay_millis(
            retry_state.attempt_number,
            self.base_backoff_millis,
            self.jitter_percent,
            rng=self.rng,
        )
        # tenacity works in seconds
        return delay / 1000.0


def _should_retry(exception: BaseException) -> bool:
    """Retry every operation failure except cancellation and misconfiguration."""
    if isinstance(exception, (RetryCancelled, ConfigurationError)):
        return False
    return isinstance(exception, Exception)


def build_retrying(
    config: ControllerConfig,
    *,
    stop: Callable[[RetryCallState], bool],
    sleep: Callable[[float], Any],
    rng: Optional[random.Random] = None,
    before_sleep: Optional[Callable[[RetryCallState], None]] = None,
    retry_error_callback: Optional[Callable[[RetryCallState], Any]] = None,
    use_async: bool = False,
) -> Union[Retrying, AsyncRetrying]:
    """Create a tenacity retrying object for one retry sequence.

    Args:
        config: Controller configuration (backoff base and jitter)
        stop: Give-up predicate, evaluated after each failure once the
            upcoming sleep is known
        sleep: Sleep function; must be a coroutine function when use_async
        rng: Optional random source for jitter
        before_sleep: Optional callback before each delay
        retry_error_callback: Optional callback producing the give-up result
        use_async: Build an AsyncRetrying instead of Retrying

    Returns:
        Configured Retrying or AsyncRetrying
    """
    kwargs: dict = {
        "stop": stop,
        "wait": wait_full_jitter(config.base_backoff_millis, config.jitter_percent, rng=rng),
        "retry": retry_if_exception(_should_retry),
        "sleep": sleep,
    }
    if before_sleep is not None:
        kwargs["before_sleep"] = before_sleep
    if retry_error_callback is not None:
        kwargs["retry_error_callback"] = retry_error_callback

    if use_async:
        return AsyncRetrying(**kwargs)
    return Retrying(**kwargs)
