"""
Concurrent read/write/watch flood against an etcd cluster

Roles:
- writers: ``concurrency`` workers sharing one queue of key indices; every
  key ``/flood/<n>`` for n in [0, store_size) is written exactly once
- heavy readers: fetch the whole ``/flood`` directory recursively, forever
- light readers: fetch one random key at a time, forever
- watchers: long-poll ``/flood`` for the next change, forever

Requests go round-robin over the cluster's client URLs. Failures are
counted per role and never escape a worker; ``stop()`` cancels every worker.
"""

import asyncio
import itertools
import logging
import random
import string
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import aiohttp

from ..core.client.etcd_http_client import FLOOD_NAMESPACE

LOG = logging.getLogger(__name__)

VALUE_LENGTH = 32
WATCH_TIMEOUT = 30.0
FAILURE_BACKOFF = 0.05


@dataclass
class RoleStats:
    ok: int = 0
    failed: int = 0


@dataclass
class FloodStats:
    """Per-role success/failure counters."""

    writes: RoleStats = field(default_factory=RoleStats)
    heavy_reads: RoleStats = field(default_factory=RoleStats)
    light_reads: RoleStats = field(default_factory=RoleStats)
    watches: RoleStats = field(default_factory=RoleStats)
    start_time: float = field(default_factory=time.monotonic)

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.start_time

    def to_dict(self) -> Dict[str, Dict[str, int]]:
        return {
            "writes": vars(self.writes).copy(),
            "heavy_reads": vars(self.heavy_reads).copy(),
            "light_reads": vars(self.light_reads).copy(),
            "watches": vars(self.watches).copy(),
        }

    def summary(self) -> str:
        return (
            f"Flood stats after {self.elapsed:.1f}s:\n"
            f"   Writes: {self.writes.ok} ok / {self.writes.failed} failed\n"
            f"   Heavy reads: {self.heavy_reads.ok} ok / {self.heavy_reads.failed} failed\n"
            f"   Light reads: {self.light_reads.ok} ok / {self.light_reads.failed} failed\n"
            f"   Watches: {self.watches.ok} ok / {self.watches.failed} failed"
        )


def random_value(n: int = VALUE_LENGTH) -> str:
    return "".join(random.choice(string.ascii_letters) for _ in range(n))


class EtcdFlood:
    """
    Load generator over the etcd v2 keys API.

    Usage:
        flood = EtcdFlood(cluster.machines(), store_size=1000, concurrency=10)
        await flood.start()
        await flood.wait_for_writes(timeout=60)
        await flood.stop()
    """

    def __init__(
        self,
        machines: Sequence[str],
        store_size: int = 30000,
        concurrency: int = 300,
        heavy_readers: int = 2,
        light_readers: int = 50,
        watchers: int = 0,
        request_timeout: float = 1.0,
        namespace: str = FLOOD_NAMESPACE
    ):
        if not machines:
            raise ValueError("at least one machine is required")
        self.machines = [m.rstrip("/") for m in machines]
        self.store_size = store_size
        self.concurrency = concurrency
        self.heavy_readers = heavy_readers
        self.light_readers = light_readers
        self.watchers = watchers
        self.request_timeout = request_timeout
        self.namespace = namespace

        self.stats = FloodStats()
        self._machine_cycle = itertools.cycle(self.machines)
        self._session: Optional[aiohttp.ClientSession] = None
        self._queue: Optional[asyncio.Queue] = None
        self._writers: List[asyncio.Task] = []
        self._readers: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return self._session is not None

    def _next_machine(self) -> str:
        return next(self._machine_cycle)

    def _key_url(self, key: Optional[int] = None) -> str:
        url = f"{self._next_machine()}/v2/keys/{self.namespace}"
        return url if key is None else f"{url}/{key}"

    async def start(self) -> None:
        if self.running:
            return

        LOG.info(
            f"Starting flood on {len(self.machines)} machine(s): store_size={self.store_size}, "
            f"concurrency={self.concurrency}, heavy_readers={self.heavy_readers}, "
            f"light_readers={self.light_readers}, watchers={self.watchers}"
        )
        self.stats = FloodStats()
        self._session = aiohttp.ClientSession()
        self._queue = asyncio.Queue()
        for n in range(self.store_size):
            self._queue.put_nowait(n)

        self._writers = [
            asyncio.ensure_future(self._writer()) for _ in range(self.concurrency)
        ]
        self._readers = (
            [asyncio.ensure_future(self._heavy_reader()) for _ in range(self.heavy_readers)]
            + [asyncio.ensure_future(self._light_reader()) for _ in range(self.light_readers)]
            + [asyncio.ensure_future(self._watcher()) for _ in range(self.watchers)]
        )

    async def wait_for_writes(self, timeout: Optional[float] = None) -> FloodStats:
        """
        Wait until every key was attempted once.

        Raises:
            asyncio.TimeoutError: writers did not finish in time
        """
        if self._writers:
            await asyncio.wait_for(asyncio.gather(*self._writers), timeout)
        LOG.info(f"Writes finished: {self.stats.writes.ok} ok / {self.stats.writes.failed} failed")
        return self.stats

    async def stop(self) -> None:
        """Cancel every worker and close the session. Safe to call repeatedly."""
        if not self.running:
            return

        tasks = self._writers + self._readers
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._writers = []
        self._readers = []

        session, self._session = self._session, None
        await session.close()
        LOG.info(self.stats.summary())

    async def _request(self, method: str, url: str, stats: RoleStats, timeout: float, **kwargs) -> bool:
        try:
            async with self._session.request(
                method, url, timeout=aiohttp.ClientTimeout(total=timeout), **kwargs
            ) as resp:
                await resp.read()
                if resp.status < 400:
                    stats.ok += 1
                    return True
                stats.failed += 1
                LOG.debug(f"{method} {url} returned {resp.status}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            stats.failed += 1
            LOG.debug(f"{method} {url} failed: {type(e).__name__}: {e}")
        return False

    async def _writer(self) -> None:
        while True:
            try:
                n = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            await self._request(
                "PUT", self._key_url(n), self.stats.writes, self.request_timeout,
                data={"value": random_value()}
            )

    async def _heavy_reader(self) -> None:
        while True:
            ok = await self._request(
                "GET", self._key_url(), self.stats.heavy_reads, self.request_timeout,
                params={"recursive": "true"}
            )
            await asyncio.sleep(0 if ok else FAILURE_BACKOFF)

    async def _light_reader(self) -> None:
        while True:
            ok = await self._request(
                "GET", self._key_url(random.randrange(self.store_size)),
                self.stats.light_reads, self.request_timeout
            )
            await asyncio.sleep(0 if ok else FAILURE_BACKOFF)

    async def _watcher(self) -> None:
        while True:
            ok = await self._request(
                "GET", self._key_url(), self.stats.watches, WATCH_TIMEOUT,
                params={"wait": "true", "recursive": "true"}
            )
            await asyncio.sleep(0 if ok else FAILURE_BACKOFF)
