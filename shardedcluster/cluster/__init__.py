"""
Sharded cluster topology and membership orchestration.
"""

from shardedcluster.cluster.address import (
    Address,
    cluster_connection_string,
    replica_set_address,
)
from shardedcluster.cluster.admin import AdminChannel, MongoAdminChannel
from shardedcluster.cluster.controller import ClusterConfig, ClusterController, Topology
from shardedcluster.cluster.convergence import PollConfig, await_convergence
from shardedcluster.cluster.factory import ShardGroupFactory
from shardedcluster.cluster.graph import ProcessGraph
from shardedcluster.cluster.lifecycle import (
    LifecycleState,
    ManagedUnit,
    ReplicaGroup,
    Router,
)

__all__ = [
    # Controller
    "ClusterController",
    "ClusterConfig",
    "Topology",
    # Addressing
    "Address",
    "replica_set_address",
    "cluster_connection_string",
    # Lifecycle
    "ProcessGraph",
    "LifecycleState",
    "ManagedUnit",
    "ReplicaGroup",
    "Router",
    "ShardGroupFactory",
    # Membership
    "AdminChannel",
    "MongoAdminChannel",
    "PollConfig",
    "await_convergence",
]
