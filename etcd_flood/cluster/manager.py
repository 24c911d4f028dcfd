"""
Cluster bootstrap

Plans every node of a ClusterSpec, then launches and liveness-probes the
nodes one at a time in index order. A node is only started once the one
before it answered its status endpoint, so peer lists and membership
descriptors are stable by the time each node reads them.

Usage:
    launched = LaunchedSet()
    bootstrapper = ClusterBootstrapper(spec, launched, etcd_root="etcd", data_root="data-dir")
    try:
        cluster = await bootstrapper.bootstrap()
        print(await cluster.keys_on_node(0))
    finally:
        await launched.drain()
"""

import enum
import logging
import os
from pathlib import Path
from typing import List, Optional, Union

from .liveness import LivenessProber
from .node import ClusterSpec, NodePlan
from .process import LaunchedSet, NodeHandle, ProcessSupervisor
from .versions import node_name
from ..core.client.etcd_http_client import FLOOD_NAMESPACE, keys_on_node
from ..utils.exceptions import ErrorCodes, LaunchError, SetupError

LOG = logging.getLogger(__name__)

ETCD_BINARY = "etcd"


class BootstrapState(enum.Enum):
    PLANNING = "planning"
    LAUNCHING = "launching"
    AWAITING_LIVENESS = "awaiting_liveness"
    READY = "ready"
    FAILED = "failed"


def executable_path(etcd_root: Union[str, Path], version) -> Path:
    """``<etcd_root>/<version>/etcd`` as an absolute path."""
    return (Path(etcd_root) / str(version) / ETCD_BINARY).resolve()


class Cluster:
    """A bootstrapped cluster whose every node passed its liveness probe."""

    def __init__(self, spec: ClusterSpec, nodes: List[NodeHandle], request_timeout: float = 1.0):
        self.spec = spec
        self.nodes = nodes
        self.request_timeout = request_timeout

    @property
    def size(self) -> int:
        return len(self.nodes)

    def client_addr(self, index: int) -> str:
        return self.spec.scheme.client_addr(index)

    def machines(self) -> List[str]:
        return self.spec.scheme.machines(range(self.size))

    async def keys_on_node(self, index: int, namespace: str = FLOOD_NAMESPACE) -> int:
        return await keys_on_node(self.client_addr(index), namespace, timeout=self.request_timeout)

    def __repr__(self) -> str:
        return f"Cluster({self.spec.version.value}, nodes={self.nodes!r})"


class ClusterBootstrapper:
    """
    Stands up one cluster: Planning -> Launching -> AwaitingLiveness -> Ready.

    Any failure moves the bootstrapper to FAILED and propagates unchanged;
    processes already started stay in the LaunchedSet for the caller's
    teardown.
    """

    def __init__(
        self,
        spec: ClusterSpec,
        launched: LaunchedSet,
        *,
        etcd_root: Union[str, Path],
        data_root: Union[str, Path],
        prober: Optional[LivenessProber] = None,
        supervisor: Optional[ProcessSupervisor] = None
    ):
        self.spec = spec
        self.launched = launched
        self.etcd_root = Path(etcd_root)
        self.data_root = Path(data_root)
        self.prober = prober or LivenessProber()
        self.supervisor = supervisor or ProcessSupervisor(launched)
        self.state = BootstrapState.PLANNING
        self.plans: List[NodePlan] = []
        self.nodes: List[NodeHandle] = []

    @property
    def executable(self) -> Path:
        return executable_path(self.etcd_root, self.spec.version)

    def plan(self) -> List[NodePlan]:
        """Compute data directory and arguments for every node."""
        executable = self.executable
        if not (executable.is_file() and os.access(executable, os.X_OK)):
            raise SetupError(
                f"etcd {self.spec.version} binary not found or not executable at {executable}",
                version=self.spec.version.value,
                executable=str(executable)
            )

        scheme = self.spec.scheme
        plans = []
        for index in range(self.spec.cluster_size):
            name = node_name(index)
            data_dir = self.data_root / name
            try:
                data_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
            except OSError as e:
                raise SetupError(
                    f"Cannot create data directory {data_dir} for node {index}: {e}",
                    code=ErrorCodes.DATA_DIR_FAILED,
                    index=index,
                    version=self.spec.version.value
                )

            plans.append(NodePlan(
                index=index,
                name=name,
                data_dir=data_dir,
                args=tuple(scheme.launch_args(index, self.spec.cluster_size, data_dir, self.spec.extra_args)),
                client_addr=scheme.client_addr(index),
                peer_addr=scheme.peer_addr(index),
            ))

        self.plans = plans
        return plans

    async def bootstrap(self) -> Cluster:
        """
        Launch every node in index order, each gated on its own liveness.

        Raises:
            SetupError: binary missing or data directory unusable
            LaunchError: a node process failed to start
            LivenessTimeoutError: a node started but never became live
        """
        version = self.spec.version.value
        LOG.info(f"Bootstrapping {self.spec.cluster_size}-node etcd {version} cluster")

        try:
            self.state = BootstrapState.PLANNING
            plans = self.plan()

            for plan in plans:
                self.state = BootstrapState.LAUNCHING
                handle = await self.supervisor.launch(
                    self.executable,
                    plan.args,
                    index=plan.index,
                    name=plan.name,
                    data_dir=plan.data_dir,
                    client_addr=plan.client_addr,
                    banner=f"Launching etcd {version} [{plan.name}]"
                )
                self.nodes.append(handle)

                self.state = BootstrapState.AWAITING_LIVENESS
                await self.prober.wait_for(plan.client_addr, index=plan.index, version=version, handle=handle)
        except LaunchError as e:
            self.state = BootstrapState.FAILED
            e.details.setdefault("version", version)
            LOG.error(f"Bootstrap of etcd {version} failed: {e}")
            raise
        except BaseException:
            self.state = BootstrapState.FAILED
            LOG.error(
                f"Bootstrap of etcd {version} failed after launching {len(self.nodes)} "
                f"of {self.spec.cluster_size} node(s)"
            )
            raise

        self.state = BootstrapState.READY
        LOG.info(f"etcd {version} cluster of {len(self.nodes)} node(s) is ready")
        return Cluster(self.spec, list(self.nodes), request_timeout=self.prober.request_timeout)
