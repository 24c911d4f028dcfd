"""
Deadline-bounded async retry

This module provides the polling primitive used wherever the harness has to
wait for something external to settle (a node answering its status endpoint,
a flood finishing its writes). Unlike a count-based retry, the loop is bounded
by a wall-clock deadline: every attempt is told how much time is left so it
can clip its own timeout, and the loop sleeps a fixed interval between
attempts.

Usage:
    retry = AsyncRetry(timeout=5.0, interval=0.1, retry_on=(ProbeFailed,))
    result = await retry.execute(probe_once)   # probe_once(state) -> result
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Type, TypeVar

T = TypeVar('T')
LOG = logging.getLogger(__name__)


class DeadlineExceeded(TimeoutError):
    """Raised when no attempt succeeded before the deadline"""

    def __init__(self, state: "RetryState"):
        self.state = state
        super().__init__(
            f"deadline of {state.timeout:.2f}s exceeded after {state.attempt} attempts "
            f"(last error: {state.last_exception!r})"
        )


class RetryState:
    """Tracks deadline and attempts for a single polled operation"""

    def __init__(self, timeout: float, interval: float):
        self.timeout = timeout
        self.interval = interval
        self.attempt = 0
        self.last_exception: Optional[BaseException] = None
        self.start_time = asyncio.get_running_loop().time()
        self.deadline = self.start_time + timeout

    def remaining(self) -> float:
        return max(0.0, self.deadline - asyncio.get_running_loop().time())

    def expired(self) -> bool:
        return self.remaining() <= 0.0

    def next_delay(self) -> float:
        """Sleep for the interval, but never past the deadline"""
        return min(self.interval, self.remaining())

    def record_attempt(self, exception: BaseException) -> None:
        self.attempt += 1
        self.last_exception = exception

    def get_summary(self) -> Dict[str, Any]:
        return {
            "attempts": self.attempt,
            "timeout": self.timeout,
            "interval": self.interval,
            "duration": asyncio.get_running_loop().time() - self.start_time,
            "last_error": str(self.last_exception) if self.last_exception else None,
        }


class AsyncRetry:
    """
    Retry an async operation until it succeeds or a deadline elapses.

    The operation is called with the live RetryState so it can bound its own
    work by ``state.remaining()``. Exceptions listed in ``retry_on`` are
    treated as "not yet"; anything else propagates immediately.
    """

    def __init__(
        self,
        timeout: float = 5.0,
        interval: float = 0.1,
        retry_on: Optional[Tuple[Type[BaseException], ...]] = None,
        on_retry: Optional[Callable[[int, BaseException, float], Awaitable[None]]] = None
    ):
        """
        Args:
            timeout: Overall deadline in seconds
            interval: Pause between attempts in seconds
            retry_on: Exception types that mean "try again"
            on_retry: Async callback called before each pause (attempt, exception, delay)
        """
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.timeout = timeout
        self.interval = interval
        self.retry_on = retry_on or (OSError, asyncio.TimeoutError)
        self.on_retry = on_retry

    async def execute(
        self,
        func: Callable[..., Awaitable[T]],
        *args,
        **kwargs
    ) -> T:
        """
        Run ``func(state, *args, **kwargs)`` until it returns.

        Raises:
            DeadlineExceeded: no attempt succeeded before the deadline
        """
        state = RetryState(self.timeout, self.interval)

        while True:
            try:
                result = await func(state, *args, **kwargs)
                if state.attempt > 0:
                    LOG.debug(f"Operation succeeded after {state.attempt} failed attempts")
                return result
            except self.retry_on as e:
                state.record_attempt(e)

            if state.expired():
                raise DeadlineExceeded(state)

            delay = state.next_delay()
            LOG.debug(
                f"Attempt {state.attempt} failed: {type(state.last_exception).__name__}: "
                f"{state.last_exception}. Retrying in {delay:.2f}s..."
            )
            if self.on_retry:
                await self.on_retry(state.attempt, state.last_exception, delay)

            await asyncio.sleep(delay)
            if state.expired():
                raise DeadlineExceeded(state)
