"""
Per-run resource ownership

A RunLifecycle owns everything one test iteration starts: a fresh scratch
directory, the LaunchedSet of node processes and, optionally, the load
generator. Leaving the ``async with`` block, by any path, stops the load
generator and kills every launched process.

Usage:
    async with RunLifecycle("./data-dir") as run:
        cluster = await run.bootstrap(ClusterSpec(ProtocolVersion.V5, 3), etcd_root="etcd")
        run.attach(EtcdFlood(cluster.machines(), ...))
        ...
"""

import logging
import shutil
from pathlib import Path
from typing import Optional, Union

from .liveness import LivenessProber
from .manager import Cluster, ClusterBootstrapper
from .node import ClusterSpec
from .process import LaunchedSet
from ..flood.base import LoadGenerator
from ..utils.exceptions import ErrorCodes, SetupError

LOG = logging.getLogger(__name__)


def reset_scratch_root(data_root: Union[str, Path]) -> Path:
    """Remove and recreate the scratch directory tree."""
    data_root = Path(data_root)
    try:
        shutil.rmtree(data_root, ignore_errors=True)
        data_root.mkdir(mode=0o700, parents=True, exist_ok=True)
    except OSError as e:
        raise SetupError(
            f"Cannot recreate scratch directory {data_root}: {e}",
            code=ErrorCodes.DATA_DIR_FAILED,
            data_dir=str(data_root)
        )
    return data_root


def remove_scratch_root(data_root: Union[str, Path]) -> None:
    """Suite-wide cleanup of the scratch directory tree."""
    data_root = Path(data_root)
    if data_root.exists():
        shutil.rmtree(data_root)
        LOG.info(f"Removed scratch directory {data_root}")


class RunLifecycle:
    """Scoped owner of one test iteration's processes and scratch space."""

    def __init__(self, data_root: Union[str, Path], prober: Optional[LivenessProber] = None):
        """
        Args:
            data_root: Scratch directory, wiped on entry
            prober: Liveness prober used by every bootstrap of this run
                unless one is passed to bootstrap() itself
        """
        self.data_root = Path(data_root)
        self.prober = prober
        self.launched = LaunchedSet()
        self.flood: Optional[LoadGenerator] = None
        self.bootstrapper: Optional[ClusterBootstrapper] = None

    async def __aenter__(self) -> "RunLifecycle":
        reset_scratch_root(self.data_root)
        self.launched = LaunchedSet()
        self.flood = None
        self.bootstrapper = None
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None:
            LOG.warning(f"Run ending with {exc_type.__name__}: {exc_val}; tearing down")
        await self.teardown()
        return None

    async def bootstrap(
        self,
        spec: ClusterSpec,
        etcd_root: Union[str, Path],
        prober: Optional[LivenessProber] = None
    ) -> Cluster:
        """Bootstrap a cluster with this run's LaunchedSet and scratch root."""
        self.bootstrapper = ClusterBootstrapper(
            spec,
            self.launched,
            etcd_root=etcd_root,
            data_root=self.data_root,
            prober=prober or self.prober,
        )
        return await self.bootstrapper.bootstrap()

    def attach(self, flood: LoadGenerator) -> LoadGenerator:
        """Register a load generator to be stopped at teardown."""
        self.flood = flood
        return flood

    async def teardown(self) -> None:
        """Stop the load generator (if any), then kill every launched process."""
        flood, self.flood = self.flood, None
        try:
            if flood is not None:
                LOG.info("Stopping load generator")
                await flood.stop()
        finally:
            if len(self.launched):
                LOG.info(f"Killing {len(self.launched)} launched node process(es)")
            await self.launched.drain()
