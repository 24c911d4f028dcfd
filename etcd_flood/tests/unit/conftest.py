"""
Shared fixtures for unit tests.

Node processes are real subprocesses running ``fake_etcd.py`` behind a
``<etcd_root>/<version>/etcd`` shim, so launch, output pumping, probing and
verification all go over real pipes and sockets.
"""

import socket
import stat
import sys
from pathlib import Path
from typing import Awaitable, Callable, Dict, List

import pytest
import pytest_asyncio
from aiohttp import web

from etcd_flood.cluster.liveness import LivenessProber
from etcd_flood.cluster.versions import ProtocolVersion

FAKE_ETCD = Path(__file__).resolve().parent.parent / "fake_etcd.py"


def install_fake_etcd(etcd_root: Path, version: ProtocolVersion) -> Path:
    """Write an executable ``etcd`` shim that execs the fake server."""
    version_dir = etcd_root / version.value
    version_dir.mkdir(parents=True, exist_ok=True)
    binary = version_dir / "etcd"
    binary.write_text(f'#!/bin/sh\nexec "{sys.executable}" "{FAKE_ETCD}" "$@"\n')
    binary.chmod(binary.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return binary


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def fake_etcd_root(tmp_path) -> Path:
    """etcd root with a fake binary for every supported version."""
    root = tmp_path / "etcd"
    for version in ProtocolVersion:
        install_fake_etcd(root, version)
    return root


@pytest.fixture
def data_root(tmp_path) -> Path:
    return tmp_path / "data-dir"


@pytest.fixture
def fast_prober() -> LivenessProber:
    return LivenessProber(timeout=5.0, interval=0.05, request_timeout=0.5)


@pytest_asyncio.fixture
async def http_server() -> Callable[[Dict[str, Callable]], Awaitable[str]]:
    """
    Factory for in-process aiohttp servers.

    ``await http_server({"/v2/stats/self": handler})`` returns the server's
    ``host:port``; every server is shut down after the test.
    """
    runners: List[web.AppRunner] = []

    async def start(routes: Dict[str, Callable]) -> str:
        app = web.Application()
        for path, handler in routes.items():
            app.router.add_route("*", path, handler)
        runner = web.AppRunner(app)
        await runner.setup()
        port = free_port()
        site = web.TCPSite(runner, "127.0.0.1", port)
        await site.start()
        runners.append(runner)
        return f"127.0.0.1:{port}"

    yield start

    for runner in runners:
        await runner.cleanup()
