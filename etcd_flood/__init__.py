"""
etcd flood harness

Stands up etcd clusters of any supported release, confirms every node is
live, floods them with concurrent reads/writes/watches and verifies the
resulting store population.
"""

__version__ = "0.1.0"
