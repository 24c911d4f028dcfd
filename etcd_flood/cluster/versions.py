"""
Per-version addressing and bootstrap arguments

Each supported etcd release forms a cluster differently. The two old
releases take a flat ``-peers`` list on every node except the seed, while
v0.5 expects a static ``-initial-cluster`` membership descriptor that is
identical on every node. Each convention lives in its own VersionScheme so
the bootstrapper never branches on the version itself.

Addresses are pure functions of the node index:
``127.0.0.1:(base + index * stride)``.
"""

import enum
import logging
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Union

from ..utils.exceptions import UnknownVersionError

LOG = logging.getLogger(__name__)

HOST = "127.0.0.1"

# Small values so test clusters converge quickly
PEER_HEARTBEAT_TIMEOUT_MS = 50
PEER_ELECTION_TIMEOUT_MS = 1000


class ProtocolVersion(enum.Enum):
    """Supported etcd releases"""
    V3 = "v0.3"
    V46 = "v0.4.6"
    V5 = "v0.5"

    @classmethod
    def parse(cls, value: Union[str, "ProtocolVersion"]) -> "ProtocolVersion":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            supported = ", ".join(v.value for v in cls)
            raise UnknownVersionError(
                f"Unknown etcd version {value!r} (supported: {supported})",
                version=value
            )

    def __str__(self) -> str:
        return self.value


def node_name(index: int) -> str:
    return f"node-{index}"


class VersionScheme:
    """
    Addressing and launch-argument contract for one protocol version.

    Subclasses set the port bases/strides and implement ``_bootstrap_args``.
    """

    version: ProtocolVersion
    client_base: int
    client_stride: int
    peer_base: int
    peer_stride: int

    def client_addr(self, index: int) -> str:
        self._check_index(index)
        return f"{HOST}:{self.client_base + index * self.client_stride}"

    def peer_addr(self, index: int) -> str:
        self._check_index(index)
        return f"{HOST}:{self.peer_base + index * self.peer_stride}"

    def client_url(self, index: int) -> str:
        return "http://" + self.client_addr(index)

    def peer_url(self, index: int) -> str:
        return "http://" + self.peer_addr(index)

    def machines(self, indices: Iterable[int]) -> List[str]:
        """Client URLs for the given nodes, as handed to a load generator."""
        return [self.client_url(i) for i in indices]

    def launch_args(
        self,
        index: int,
        cluster_size: int,
        data_dir: Union[str, Path],
        extra_args: Optional[Sequence[str]] = None
    ) -> List[str]:
        """
        Full argument list for node ``index`` of a ``cluster_size`` cluster.

        Extra args are appended last so they win over the defaults; nothing
        is deduplicated.
        """
        self._check_index(index)
        if cluster_size < 1:
            raise ValueError(f"cluster_size must be >= 1, got {cluster_size}")
        if index >= cluster_size:
            raise ValueError(f"node index {index} outside cluster of size {cluster_size}")

        args = self._bootstrap_args(index, cluster_size, str(data_dir))
        args.extend(extra_args or ())
        return args

    def _bootstrap_args(self, index: int, cluster_size: int, data_dir: str) -> List[str]:
        raise NotImplementedError

    @staticmethod
    def _check_index(index: int) -> None:
        if index < 0:
            raise ValueError(f"node index must be non-negative, got {index}")

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.version.value})"


class PeerListScheme(VersionScheme):
    """v0.3 / v0.4.6: one combined offset, flat peer list for joiners."""

    client_base = 4001
    client_stride = 1
    peer_base = 7001
    peer_stride = 1

    def __init__(self, version: ProtocolVersion):
        self.version = version

    def _bootstrap_args(self, index: int, cluster_size: int, data_dir: str) -> List[str]:
        args = [
            f"-name={node_name(index)}",
            f"-addr={self.client_addr(index)}",
            f"-peer-addr={self.peer_addr(index)}",
            f"-data-dir={data_dir}",
            f"-peer-heartbeat-timeout={PEER_HEARTBEAT_TIMEOUT_MS}",
            f"-peer-election-timeout={PEER_ELECTION_TIMEOUT_MS}",
        ]

        # Node 0 is the seed; everyone else is told about every other node
        if index > 0 and cluster_size > 1:
            peers = [self.peer_addr(i) for i in range(cluster_size) if i != index]
            args.append(f"-peers={','.join(peers)}")

        return args


class StaticClusterScheme(VersionScheme):
    """v0.5: separate client/peer ports, full membership known up front."""

    version = ProtocolVersion.V5
    client_base = 2379
    client_stride = 10
    peer_base = 2380
    peer_stride = 10

    def initial_cluster(self, cluster_size: int) -> str:
        return ",".join(
            f"{node_name(i)}={self.peer_url(i)}" for i in range(cluster_size)
        )

    def _bootstrap_args(self, index: int, cluster_size: int, data_dir: str) -> List[str]:
        return [
            f"-name={node_name(index)}",
            f"-advertise-client-urls={self.client_url(index)}",
            f"-listen-client-urls={self.client_url(index)}",
            f"-listen-peer-urls={self.peer_url(index)}",
            f"-initial-advertise-peer-urls={self.peer_url(index)}",
            f"-initial-cluster={self.initial_cluster(cluster_size)}",
            f"-data-dir={data_dir}",
            "-initial-cluster-state=new",
        ]


_SCHEMES = {
    ProtocolVersion.V3: PeerListScheme(ProtocolVersion.V3),
    ProtocolVersion.V46: PeerListScheme(ProtocolVersion.V46),
    ProtocolVersion.V5: StaticClusterScheme(),
}


def scheme_for(version: Union[str, ProtocolVersion]) -> VersionScheme:
    """Look up the scheme for a version; unknown versions fail fast."""
    return _SCHEMES[ProtocolVersion.parse(version)]
