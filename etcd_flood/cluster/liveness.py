"""
Liveness probing for etcd nodes

A node is live once ``GET /v2/stats/self`` answers 200. The probe polls with
a short per-request timeout, clipped to whatever is left of the overall
deadline, so a stuck request can never carry it past the deadline.
"""

import asyncio
import logging
from typing import Optional

import aiohttp

from ..utils.async_retry import AsyncRetry, DeadlineExceeded, RetryState
from ..utils.exceptions import LivenessTimeoutError

LOG = logging.getLogger(__name__)

STATS_SELF_PATH = "/v2/stats/self"


class NotLiveYet(Exception):
    """One probe attempt that did not return 200"""

    def __init__(self, reason: str, status: Optional[int] = None):
        self.reason = reason
        self.status = status
        super().__init__(reason)


class NodeExited(Exception):
    """The process behind the address died while being polled"""

    def __init__(self, returncode: int, attempts: int):
        self.returncode = returncode
        self.attempts = attempts
        super().__init__(f"exited with {returncode}")


class LivenessProber:
    """Waits for a node's status endpoint to answer 200."""

    def __init__(self, timeout: float = 5.0, interval: float = 0.1, request_timeout: float = 1.0):
        """
        Args:
            timeout: Overall deadline for one node, in seconds
            interval: Pause between attempts, in seconds
            request_timeout: Upper bound for a single HTTP request, in seconds
        """
        if request_timeout <= 0:
            raise ValueError("request_timeout must be positive")
        self.timeout = timeout
        self.interval = interval
        self.request_timeout = request_timeout
        self._retry = AsyncRetry(timeout=timeout, interval=interval, retry_on=(NotLiveYet,))

    @classmethod
    def from_config(cls, config) -> "LivenessProber":
        """Build from anything carrying probe_timeout, probe_interval and request_timeout."""
        return cls(
            timeout=config.probe_timeout,
            interval=config.probe_interval,
            request_timeout=config.request_timeout
        )

    async def wait_for(
        self,
        client_addr: str,
        index: Optional[int] = None,
        version: Optional[str] = None,
        handle=None
    ) -> int:
        """
        Block until ``client_addr`` is live.

        When ``handle`` is given, polling stops as soon as its process has
        exited instead of running out the deadline.

        Returns:
            Number of attempts it took

        Raises:
            LivenessTimeoutError: no 200 before the deadline, or the process
                behind ``handle`` exited first
        """
        url = f"http://{client_addr}{STATS_SELF_PATH}"
        label = f"node {index}" if index is not None else client_addr
        LOG.debug(f"Waiting for {label} at {url} (timeout {self.timeout}s)")

        async with aiohttp.ClientSession() as session:
            try:
                attempts = await self._retry.execute(self._probe_once, session, url, handle)
            except DeadlineExceeded as e:
                raise LivenessTimeoutError(
                    f"{label} ({version or 'unknown version'}) at {client_addr} never became live "
                    f"within {self.timeout}s after {e.state.attempt} attempts: {e.state.last_exception}",
                    index=index,
                    version=version,
                    address=client_addr,
                    attempts=e.state.attempt,
                    last_status=getattr(e.state.last_exception, "status", None)
                )
            except NodeExited as e:
                raise LivenessTimeoutError(
                    f"{label} ({version or 'unknown version'}) at {client_addr} exited with "
                    f"{e.returncode} before becoming live, after {e.attempts} attempts",
                    index=index,
                    version=version,
                    address=client_addr,
                    attempts=e.attempts,
                    last_status=None,
                    returncode=e.returncode
                )

        LOG.info(f"{label} is live at {client_addr}")
        return attempts

    async def _probe_once(self, state: RetryState, session: aiohttp.ClientSession, url: str, handle=None) -> int:
        if handle is not None and handle.returncode is not None:
            raise NodeExited(handle.returncode, state.attempt)
        budget = min(self.request_timeout, state.remaining())
        if budget <= 0:
            raise NotLiveYet("deadline reached before request")

        try:
            async with session.get(url, timeout=aiohttp.ClientTimeout(total=budget)) as resp:
                if resp.status != 200:
                    raise NotLiveYet(f"HTTP {resp.status}", status=resp.status)
                await resp.read()
        except asyncio.TimeoutError:
            raise NotLiveYet(f"request timed out after {budget:.2f}s")
        except aiohttp.ClientError as e:
            raise NotLiveYet(f"{type(e).__name__}: {e}")

        return state.attempt + 1

    async def is_live(self, client_addr: str) -> bool:
        """Single probe, no retry."""
        url = f"http://{client_addr}{STATS_SELF_PATH}"
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(url, timeout=aiohttp.ClientTimeout(total=self.request_timeout)) as resp:
                    return resp.status == 200
        except (asyncio.TimeoutError, aiohttp.ClientError):
            return False
