from .lifecycle import RunLifecycle, remove_scratch_root, reset_scratch_root
from .liveness import LivenessProber
from .manager import BootstrapState, Cluster, ClusterBootstrapper
from .node import ClusterSpec, NodePlan
from .process import LaunchedSet, NodeHandle, ProcessSupervisor
from .provision import provision_binaries, provision_binary
from .versions import ProtocolVersion, VersionScheme, scheme_for
