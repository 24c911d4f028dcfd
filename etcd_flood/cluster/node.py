"""Cluster and node descriptions shared by the bootstrapper and its callers."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Tuple

from .versions import ProtocolVersion, VersionScheme, scheme_for


@dataclass(frozen=True)
class ClusterSpec:
    """
    What to stand up: a version, a size and any extra launch arguments.

    The version's scheme is resolved once here, so an unknown version fails
    before anything touches the filesystem.
    """
    version: ProtocolVersion
    cluster_size: int = 1
    extra_args: Tuple[str, ...] = ()
    scheme: VersionScheme = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        version = ProtocolVersion.parse(self.version)
        object.__setattr__(self, "version", version)
        object.__setattr__(self, "extra_args", tuple(self.extra_args))
        if self.cluster_size < 1:
            raise ValueError(f"cluster_size must be >= 1, got {self.cluster_size}")
        object.__setattr__(self, "scheme", scheme_for(version))


@dataclass(frozen=True)
class NodePlan:
    """Everything needed to launch one node, computed before any launch."""
    index: int
    name: str
    data_dir: Path
    args: Tuple[str, ...]
    client_addr: str
    peer_addr: str
