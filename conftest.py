"""
Pytest configuration and fixtures for etcd flood tests.

This module provides shared fixtures for all pytest-based tests, including
binary provisioning, the run configuration and a per-test RunLifecycle.

Usage:
    # In test files, fixtures are automatically injected:

    @pytest.mark.cluster
    @pytest.mark.asyncio
    async def test_something(run_lifecycle, etcd_binaries, flood_config):
        cluster = await run_lifecycle.bootstrap(ClusterSpec("v0.5", 3), flood_config.etcd_root)
        ...
"""

import logging
from pathlib import Path
from typing import AsyncGenerator, Dict

import pytest
import pytest_asyncio

from etcd_flood.cluster.liveness import LivenessProber
from etcd_flood.cluster.lifecycle import RunLifecycle, remove_scratch_root
from etcd_flood.cluster.provision import provision_binaries
from etcd_flood.cluster.versions import ProtocolVersion
from etcd_flood.utils.config import FloodConfig

LOG = logging.getLogger(__name__)


def pytest_addoption(parser):
    """Add custom command line options for pytest."""
    parser.addoption(
        "--etcd-root",
        action="store",
        default=None,
        help="Directory holding <version>/etcd binaries (and optional download.sh)"
    )
    parser.addoption(
        "--data-dir",
        action="store",
        default=None,
        help="Scratch directory for node data"
    )
    parser.addoption(
        "--flood-config",
        action="store",
        default=None,
        help="Path to a YAML run configuration"
    )
    parser.addoption(
        "--etcd-version",
        action="store",
        default=None,
        choices=[v.value for v in ProtocolVersion],
        help="Only run cluster tests against this version"
    )
    for name, help_text in (
        ("--store-size", "Total number of keys to put in the store"),
        ("--concurrency", "Number of concurrent writers"),
        ("--heavy-readers", "Number of concurrent readers that fetch the entire store"),
        ("--light-readers", "Number of concurrent readers that fetch a key at a time"),
        ("--watchers", "Number of concurrent watchers"),
    ):
        parser.addoption(name, action="store", type=int, default=None, help=help_text)
    parser.addoption(
        "--run-cluster",
        action="store_true",
        default=False,
        help="Run tests that launch real etcd binaries"
    )


@pytest.fixture(scope="session")
def flood_config(request) -> FloodConfig:
    """Run configuration: YAML file, then environment, then command line."""
    opt = request.config.getoption
    path = opt("--flood-config")
    config = FloodConfig.from_yaml(path) if path else FloodConfig()
    config = config.with_env_overrides().with_overrides(
        etcd_root=opt("--etcd-root"),
        data_dir=opt("--data-dir"),
        store_size=opt("--store-size"),
        concurrency=opt("--concurrency"),
        heavy_readers=opt("--heavy-readers"),
        light_readers=opt("--light-readers"),
        watchers=opt("--watchers"),
    )
    return config.validate()


@pytest.fixture(scope="session")
def etcd_versions(request):
    """Versions the cluster tests run against."""
    only = request.config.getoption("--etcd-version")
    return [ProtocolVersion.parse(only)] if only else list(ProtocolVersion)


@pytest.fixture(scope="session")
def etcd_binaries(flood_config: FloodConfig, etcd_versions) -> Dict[ProtocolVersion, Path]:
    """
    Provision every version once per session.

    A missing binary or failing download script aborts the session here,
    before any test launches a node.
    """
    LOG.info(f"Provisioning etcd {', '.join(v.value for v in etcd_versions)} under {flood_config.etcd_root}")
    return provision_binaries(flood_config.etcd_root, etcd_versions)


@pytest.fixture(scope="session")
def scratch_root(flood_config: FloodConfig):
    """Suite-wide scratch directory, removed once the session ends."""
    root = Path(flood_config.data_dir).resolve()
    yield root
    remove_scratch_root(root)


@pytest.fixture(scope="session")
def liveness_prober(flood_config: FloodConfig) -> LivenessProber:
    """Prober built from the configured probe timings."""
    return LivenessProber.from_config(flood_config)


@pytest_asyncio.fixture(scope="function")
async def run_lifecycle(scratch_root: Path, liveness_prober: LivenessProber) -> AsyncGenerator[RunLifecycle, None]:
    """
    Fresh RunLifecycle for one test.

    Whatever the test launched is killed when it finishes, pass or fail.
    """
    async with RunLifecycle(scratch_root, prober=liveness_prober) as run:
        yield run


# Markers
def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )
    config.addinivalue_line(
        "markers", "cluster: mark test as launching real etcd binaries"
    )


def pytest_collection_modifyitems(session, config, items):
    """Skip cluster tests unless --run-cluster was given."""
    if config.getoption("--run-cluster"):
        return
    skip_cluster = pytest.mark.skip(reason="needs --run-cluster and etcd binaries")
    for item in items:
        if item.get_closest_marker("cluster"):
            item.add_marker(skip_cluster)
