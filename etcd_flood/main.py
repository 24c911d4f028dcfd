#!/usr/bin/env python3
import argparse
import asyncio
import json
import logging
import sys
import time
from pathlib import Path
from typing import Dict, List, Optional

from .cluster.lifecycle import RunLifecycle, remove_scratch_root
from .cluster.liveness import LivenessProber
from .cluster.node import ClusterSpec
from .cluster.provision import provision_binary
from .cluster.versions import ProtocolVersion
from .flood.flood import EtcdFlood
from .utils.config import FloodConfig
from .utils.exceptions import EtcdFloodError, VerificationError
from .utils.logging import setup_logging

LOG = logging.getLogger(__name__)


class RunReport:
    """Outcome of one flood run"""

    def __init__(self, config: FloodConfig):
        self.config = config
        self.success = False
        self.error: Optional[str] = None
        self.error_details: Optional[Dict] = None
        self.keys_per_node: Dict[str, int] = {}
        self.flood_stats: Dict = {}
        self.start_time = time.time()
        self.end_time = self.start_time

    def mark_success(self):
        self.success = True
        self.end_time = time.time()

    def mark_failure(self, error: Exception):
        self.success = False
        self.error = str(error)
        if isinstance(error, EtcdFloodError):
            self.error_details = error.to_dict()
        self.end_time = time.time()

    def to_dict(self):
        return {
            "success": self.success,
            "error": self.error,
            "error_details": self.error_details,
            "config": self.config.to_dict(),
            "keys_per_node": self.keys_per_node,
            "flood_stats": self.flood_stats,
            "duration": self.end_time - self.start_time,
        }


async def run_flood(config: FloodConfig, report: RunReport, write_timeout: float) -> None:
    """Bootstrap, flood, verify, tear down."""
    spec = ClusterSpec(
        ProtocolVersion.parse(config.version),
        config.cluster_size,
        tuple(config.extra_args),
    )
    async with RunLifecycle(config.data_dir, prober=LivenessProber.from_config(config)) as run:
        cluster = await run.bootstrap(spec, config.etcd_root)

        flood = run.attach(EtcdFlood(
            cluster.machines(),
            store_size=config.store_size,
            concurrency=config.concurrency,
            heavy_readers=config.heavy_readers,
            light_readers=config.light_readers,
            watchers=config.watchers,
            request_timeout=config.request_timeout,
        ))
        await flood.start()
        try:
            stats = await flood.wait_for_writes(timeout=write_timeout)
        finally:
            await flood.stop()
            report.flood_stats = flood.stats.to_dict()

        mismatched: List[str] = []
        for node in cluster.nodes:
            count = await cluster.keys_on_node(node.index)
            report.keys_per_node[node.name] = count
            if count != config.store_size:
                mismatched.append(f"{node.name}={count}")

        if stats.writes.failed:
            LOG.warning(f"{stats.writes.failed} writes failed during the flood")
        if mismatched:
            raise VerificationError(
                f"Expected {config.store_size} keys on every node, got {', '.join(mismatched)}",
                expected=config.store_size,
                actual=report.keys_per_node
            )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="etcd cluster flood harness")
    parser.add_argument("--config", default=None,
                        help="Path to a YAML run configuration")
    parser.add_argument("--etcd-version", default=None,
                        choices=[v.value for v in ProtocolVersion],
                        help="etcd version to test")
    parser.add_argument("--nodes", dest="cluster_size", type=int, default=None,
                        help="Number of nodes in the cluster")
    parser.add_argument("--store-size", type=int, default=None,
                        help="Total number of keys to put in the store")
    parser.add_argument("--concurrency", type=int, default=None,
                        help="Number of concurrent writers")
    parser.add_argument("--heavy-readers", type=int, default=None,
                        help="Number of concurrent readers that fetch the entire store")
    parser.add_argument("--light-readers", type=int, default=None,
                        help="Number of concurrent readers that fetch a key at a time")
    parser.add_argument("--watchers", type=int, default=None,
                        help="Number of concurrent watchers")
    parser.add_argument("--etcd-root", default=None,
                        help="Directory holding <version>/etcd binaries")
    parser.add_argument("--data-dir", default=None,
                        help="Scratch directory for node data")
    parser.add_argument("--skip-provision", action="store_true",
                        help="Do not run download.sh before the run")
    parser.add_argument("--write-timeout", type=float, default=300.0,
                        help="Seconds to wait for every key to be written")
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="Logging level")
    parser.add_argument("--log-file", default=None,
                        help="Path to log file")
    parser.add_argument("--node-log-file", default=None,
                        help="Write etcd node output to this file instead of the console")
    parser.add_argument("--quiet-nodes", action="store_true",
                        help="Suppress etcd node output")
    parser.add_argument("--output-dir", default="output",
                        help="Output directory for the run report")
    return parser


def load_config(args: argparse.Namespace) -> FloodConfig:
    config = FloodConfig.from_yaml(args.config) if args.config else FloodConfig()
    config = config.with_env_overrides()
    config = config.with_overrides(
        version=args.etcd_version,
        cluster_size=args.cluster_size,
        store_size=args.store_size,
        concurrency=args.concurrency,
        heavy_readers=args.heavy_readers,
        light_readers=args.light_readers,
        watchers=args.watchers,
        etcd_root=args.etcd_root,
        data_dir=args.data_dir,
    )
    return config.validate()


async def main_async(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level, args.log_file, args.node_log_file, args.quiet_nodes)

    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    try:
        config = load_config(args)
    except EtcdFloodError as e:
        LOG.error(f"Invalid configuration: {e}")
        return 1

    report = RunReport(config)
    try:
        if not args.skip_provision:
            provision_binary(config.etcd_root, config.version)
        await run_flood(config, report, args.write_timeout)
        report.mark_success()
    except (EtcdFloodError, asyncio.TimeoutError) as e:
        LOG.error(f"Flood run failed: {type(e).__name__}: {e}")
        report.mark_failure(e)
    finally:
        remove_scratch_root(config.data_dir)

    LOG.info("=" * 60)
    LOG.info(f"RUN {'PASSED' if report.success else 'FAILED'} (etcd {config.version}, {config.cluster_size} nodes)")
    for name, count in report.keys_per_node.items():
        LOG.info(f"  {name}: {count} keys")
    LOG.info("=" * 60)

    report_file = output_dir / "run_report.json"
    with open(report_file, 'w') as f:
        json.dump(report.to_dict(), f, indent=2)
    LOG.info(f"Run report saved to: {report_file}")

    return 0 if report.success else 1


def main() -> int:
    return asyncio.run(main_async())


if __name__ == "__main__":
    sys.exit(main())
