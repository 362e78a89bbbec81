"""
shardedcluster - Orchestration of sharded database clusters for integration tests.

This package drives a topology of shard replica sets, a config server replica
set and routers with features including:
- Dependency-ordered start and stop of cluster processes
- Shard membership changes that wait for cluster-wide convergence
- Deterministic connection strings and launch arguments
"""

__version__ = "0.1.0"

from shardedcluster.cluster import ClusterConfig, ClusterController
from shardedcluster.errors import (
    ClusterError,
    ConfigurationError,
    CycleError,
    MembershipTimeoutError,
)

__all__ = [
    "ClusterConfig",
    "ClusterController",
    "ClusterError",
    "ConfigurationError",
    "CycleError",
    "MembershipTimeoutError",
]
