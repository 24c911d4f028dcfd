import pytest

from etcd_flood.cluster.node import ClusterSpec
from etcd_flood.cluster.versions import (
    PeerListScheme,
    ProtocolVersion,
    StaticClusterScheme,
    scheme_for,
)
from etcd_flood.utils.exceptions import ErrorCodes, UnknownVersionError

ALL_VERSIONS = list(ProtocolVersion)
LEGACY_VERSIONS = [ProtocolVersion.V3, ProtocolVersion.V46]


def flag(args, name):
    """Values of every ``-name=value`` argument, in order."""
    prefix = f"-{name}="
    return [a[len(prefix):] for a in args if a.startswith(prefix)]


class TestProtocolVersion:

    def test_parse_known_tags(self):
        assert ProtocolVersion.parse("v0.3") is ProtocolVersion.V3
        assert ProtocolVersion.parse("v0.4.6") is ProtocolVersion.V46
        assert ProtocolVersion.parse("v0.5") is ProtocolVersion.V5
        assert ProtocolVersion.parse(ProtocolVersion.V5) is ProtocolVersion.V5

    def test_unknown_version_fails_fast(self):
        with pytest.raises(UnknownVersionError) as exc_info:
            scheme_for("v2.3")

        assert exc_info.value.code == ErrorCodes.UNKNOWN_VERSION
        assert exc_info.value.details["version"] == "v2.3"
        assert "v0.4.6" in exc_info.value.message

    def test_cluster_spec_rejects_unknown_version(self):
        with pytest.raises(UnknownVersionError):
            ClusterSpec("v0.6", 3)

    def test_cluster_spec_selects_scheme_once(self):
        spec = ClusterSpec("v0.4.6", 3, ["-snapshot=false"])

        assert spec.version is ProtocolVersion.V46
        assert isinstance(spec.scheme, PeerListScheme)
        assert spec.extra_args == ("-snapshot=false",)

    @pytest.mark.parametrize("size", [0, -1])
    def test_cluster_spec_rejects_empty_cluster(self, size):
        with pytest.raises(ValueError):
            ClusterSpec(ProtocolVersion.V5, size)


class TestAddressing:

    @pytest.mark.parametrize("version", ALL_VERSIONS)
    @pytest.mark.parametrize("size", [1, 2, 3, 5, 9])
    def test_addresses_never_collide(self, version, size):
        scheme = scheme_for(version)
        clients = [scheme.client_addr(i) for i in range(size)]
        peers = [scheme.peer_addr(i) for i in range(size)]

        assert len(set(clients)) == size
        assert len(set(peers)) == size
        assert not set(clients) & set(peers)

    @pytest.mark.parametrize("version", LEGACY_VERSIONS)
    def test_legacy_ports(self, version):
        scheme = scheme_for(version)

        assert scheme.client_addr(0) == "127.0.0.1:4001"
        assert scheme.client_addr(2) == "127.0.0.1:4003"
        assert scheme.peer_addr(0) == "127.0.0.1:7001"
        assert scheme.peer_addr(2) == "127.0.0.1:7003"

    def test_v5_uses_separate_client_and_peer_ports(self):
        scheme = scheme_for(ProtocolVersion.V5)

        assert isinstance(scheme, StaticClusterScheme)
        assert scheme.client_addr(0) == "127.0.0.1:2379"
        assert scheme.peer_addr(0) == "127.0.0.1:2380"
        assert scheme.client_addr(1) == "127.0.0.1:2389"
        assert scheme.peer_addr(1) == "127.0.0.1:2390"

    def test_machines_are_client_urls(self):
        scheme = scheme_for(ProtocolVersion.V3)

        assert scheme.machines([0, 1]) == ["http://127.0.0.1:4001", "http://127.0.0.1:4002"]

    def test_negative_index_rejected(self):
        with pytest.raises(ValueError):
            scheme_for(ProtocolVersion.V5).client_addr(-1)


class TestLegacyArgs:

    @pytest.mark.parametrize("version", LEGACY_VERSIONS)
    def test_single_node_has_no_peers(self, version):
        args = scheme_for(version).launch_args(0, 1, "/data/node-0")

        assert args == [
            "-name=node-0",
            "-addr=127.0.0.1:4001",
            "-peer-addr=127.0.0.1:7001",
            "-data-dir=/data/node-0",
            "-peer-heartbeat-timeout=50",
            "-peer-election-timeout=1000",
        ]

    @pytest.mark.parametrize("version", LEGACY_VERSIONS)
    def test_seed_node_gets_no_peers_in_larger_cluster(self, version):
        args = scheme_for(version).launch_args(0, 3, "/data/node-0")

        assert flag(args, "peers") == []

    @pytest.mark.parametrize("version", LEGACY_VERSIONS)
    @pytest.mark.parametrize("size", [2, 3, 5])
    def test_joiners_list_every_other_peer(self, version, size):
        scheme = scheme_for(version)
        for index in range(1, size):
            args = scheme.launch_args(index, size, f"/data/node-{index}")
            peers_flags = flag(args, "peers")

            assert len(peers_flags) == 1
            peers = peers_flags[0].split(",")
            assert len(peers) == size - 1
            assert scheme.peer_addr(index) not in peers
            assert peers == [scheme.peer_addr(i) for i in range(size) if i != index]

    def test_extra_args_come_last(self):
        args = scheme_for(ProtocolVersion.V3).launch_args(
            1, 2, "/data/node-1", ["-peer-election-timeout=200", "-v"]
        )

        assert args[-2:] == ["-peer-election-timeout=200", "-v"]
        # Not deduplicated: both timeouts are present, the later one wins in etcd
        assert flag(args, "peer-election-timeout") == ["1000", "200"]

    def test_index_outside_cluster_rejected(self):
        with pytest.raises(ValueError):
            scheme_for(ProtocolVersion.V46).launch_args(3, 3, "/data/node-3")


class TestStaticClusterArgs:

    def test_single_node_membership_is_only_itself(self):
        args = scheme_for(ProtocolVersion.V5).launch_args(0, 1, "/data/node-0")

        assert args == [
            "-name=node-0",
            "-advertise-client-urls=http://127.0.0.1:2379",
            "-listen-client-urls=http://127.0.0.1:2379",
            "-listen-peer-urls=http://127.0.0.1:2380",
            "-initial-advertise-peer-urls=http://127.0.0.1:2380",
            "-initial-cluster=node-0=http://127.0.0.1:2380",
            "-data-dir=/data/node-0",
            "-initial-cluster-state=new",
        ]
        assert flag(args, "peers") == []

    @pytest.mark.parametrize("size", [2, 3, 7])
    def test_membership_descriptor_identical_on_every_node(self, size):
        scheme = scheme_for(ProtocolVersion.V5)
        descriptors = set()
        for index in range(size):
            args = scheme.launch_args(index, size, f"/data/node-{index}")
            (descriptor,) = flag(args, "initial-cluster")
            entries = descriptor.split(",")

            assert len(entries) == size
            assert f"node-{index}={scheme.peer_url(index)}" in entries
            descriptors.add(descriptor)

        assert len(descriptors) == 1

    def test_extra_args_come_last(self):
        args = scheme_for(ProtocolVersion.V5).launch_args(0, 1, "/d", ["-initial-cluster-state=existing"])

        assert args[-1] == "-initial-cluster-state=existing"
        assert args[-2] == "-initial-cluster-state=new"
