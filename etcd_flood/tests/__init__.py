"""
etcd flood harness tests

Unit tests (``etcd_flood/tests/unit``) run against ``fake_etcd.py`` and
in-process aiohttp servers and need no etcd binaries:
   pytest etcd_flood/tests/ -v

Cluster tests (``cluster_test_cases/``) launch real etcd releases from
``<etcd_root>/<version>/etcd`` and only run when asked for:
   pytest cluster_test_cases/ --run-cluster --etcd-root etcd
"""
