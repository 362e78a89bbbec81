"""
Sharded cluster controller.

Owns the cluster topology and drives it through its lifecycle:
- Dependency-ordered start/stop of shards, config servers and routers
- Shard registration (addShard, then poll listShards until active)
- Shard removal (poll removeShard until completed, then stop)
- Database and collection sharding commands
"""

import threading
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from shardedcluster.cluster import admin
from shardedcluster.cluster.address import cluster_connection_string, replica_set_address
from shardedcluster.cluster.admin import AdminChannelFactory, MongoAdminChannel
from shardedcluster.cluster.convergence import PollConfig, await_convergence
from shardedcluster.cluster.factory import ProcessBuilder, ReplicaSetBuilder, ShardGroupFactory
from shardedcluster.cluster.graph import ProcessGraph
from shardedcluster.cluster.lifecycle import (
    LifecycleState,
    ManagedUnit,
    NetworkHandle,
    ReplicaGroup,
    Router,
)
from shardedcluster.errors import ConfigurationError, MembershipTimeoutError
from shardedcluster.utils.config import Config
from shardedcluster.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ClusterConfig:
    """
    Shape and timing of a sharded cluster.
    
    Attributes:
        shard_count: Shards created at construction
        replica_count: Members per shard and config server group
        router_count: Routers created at construction
        namespace_prefix: Prefix for replica group namespaces
        router_prefix: Router name prefix, followed by the 1-based index
        max_workers: Concurrent starts per dependency level (None = unbounded)
        server_selection_timeout_ms: Admin channel server selection timeout
        membership: Polling policy for shard add/remove
    """
    shard_count: int = 1
    replica_count: int = 1
    router_count: int = 1
    namespace_prefix: str = "test-mongo"
    router_prefix: str = "test-mongos"
    max_workers: Optional[int] = None
    server_selection_timeout_ms: int = 30000
    membership: PollConfig = field(default_factory=PollConfig)
    
    @classmethod
    def from_config(cls, config: Config) -> "ClusterConfig":
        """Build from a loaded Config."""
        return cls(
            shard_count=config.get("cluster.shards", 1),
            replica_count=config.get("cluster.replicas", 1),
            router_count=config.get("cluster.routers", 1),
            namespace_prefix=config.get("cluster.namespace_prefix", "test-mongo"),
            router_prefix=config.get("cluster.router_prefix", "test-mongos"),
            max_workers=config.get("cluster.max_workers"),
            server_selection_timeout_ms=config.get("admin.server_selection_timeout_ms", 30000),
            membership=PollConfig(
                poll_interval_ms=config.get("membership.poll_interval_ms", 1000),
                timeout_ms=config.get("membership.timeout_ms", 30000),
            ),
        )


@dataclass
class Topology:
    """
    Desired cluster state.
    
    Attributes:
        config_servers: Config server group, fixed for the cluster lifetime
        shards: Registered shards in creation order
        routers: Routers, fixed after construction
    """
    config_servers: ReplicaGroup
    shards: List[ReplicaGroup]
    routers: List[Router]
    
    def units(self) -> List[ManagedUnit]:
        """All units: shards, config servers, then routers."""
        return [*self.shards, self.config_servers, *self.routers]


class ClusterController:
    """
    Sharded cluster for integration tests.
    
    Calls that mutate the topology (start, stop, add_shard, remove_shard)
    must be serialized by the caller.
    
    Usage:
        with ClusterController(network, replica_sets, processes) as cluster:
            cluster.add_shard()
            client = MongoClient(cluster.connection_string)
    """
    
    def __init__(
        self,
        network: NetworkHandle,
        replica_set_builder: ReplicaSetBuilder,
        process_builder: ProcessBuilder,
        config: Optional[ClusterConfig] = None,
        admin_channel_factory: Optional[AdminChannelFactory] = None,
    ):
        """
        Initialize cluster controller and build the initial topology.
        
        Args:
            network: Shared network, owned and closed by this controller
            replica_set_builder: Creates external replica set handles
            process_builder: Creates external process handles
            config: Cluster shape and timing
            admin_channel_factory: Opens an admin channel for a connection
                string (defaults to MongoAdminChannel)
        
        Raises:
            ConfigurationError: If no router is configured
        """
        self.config = config or ClusterConfig()
        
        if self.config.router_count < 1:
            raise ConfigurationError(
                f"Cluster needs at least one router, got {self.config.router_count}"
            )
        
        self._network = network
        self._admin_channel_factory = admin_channel_factory or self._mongo_admin_channel
        self._state = LifecycleState.NOT_STARTED
        self._state_lock = threading.Lock()
        self._unregistered_shards: List[ReplicaGroup] = []
        
        self._factory = ShardGroupFactory(
            network=network,
            replica_set_builder=replica_set_builder,
            process_builder=process_builder,
            replica_count=self.config.replica_count,
            namespace_prefix=self.config.namespace_prefix,
            router_prefix=self.config.router_prefix,
        )
        
        shards = [self._factory.create_shard() for _ in range(self.config.shard_count)]
        config_servers = self._factory.create_config_servers()
        routers = [
            self._factory.create_router(i, config_servers, shards)
            for i in range(1, self.config.router_count + 1)
        ]
        
        self.topology = Topology(
            config_servers=config_servers,
            shards=shards,
            routers=routers,
        )
        self._graph = ProcessGraph(
            self._factory.dependencies,
            max_workers=self.config.max_workers,
        )
        
        logger.info(
            "ClusterController initialized",
            shards=self.config.shard_count,
            replicas=self.config.replica_count,
            routers=self.config.router_count,
        )
    
    @property
    def state(self) -> LifecycleState:
        return self._state
    
    @property
    def shards(self) -> Sequence[ReplicaGroup]:
        """Registered shards, oldest first."""
        return tuple(self.topology.shards)
    
    @property
    def unregistered_shards(self) -> Sequence[ReplicaGroup]:
        """Shards started by add_shard whose registration failed."""
        return tuple(self._unregistered_shards)
    
    @property
    def config_servers(self) -> ReplicaGroup:
        return self.topology.config_servers
    
    @property
    def routers(self) -> Sequence[Router]:
        return tuple(self.topology.routers)
    
    @property
    def connection_string(self) -> str:
        """Standard connection string made of router client addresses."""
        return cluster_connection_string(self.topology.routers)
    
    def start(self) -> None:
        """
        Start every unit in dependency order and register all shards.
        
        Re-entrant: a started cluster is left untouched.
        
        Raises:
            ConfigurationError: If the cluster was already stopped
            CycleError: If the dependency relation is cyclic
            MembershipTimeoutError: If a shard never becomes active
        """
        with self._state_lock:
            if self._state == LifecycleState.STARTED:
                return
            
            if self._state == LifecycleState.STOPPED:
                raise ConfigurationError("Cluster has been stopped and its network released")
            
            logger.info("Starting sharded cluster", shards=len(self.topology.shards))
            
            self._graph.start_all(self.topology.units())
            
            for shard in self.topology.shards:
                self.register_shard(shard)
            
            self._state = LifecycleState.STARTED
            
            logger.info(
                "Sharded cluster started",
                shards=[shard.name for shard in self.topology.shards],
                routers=len(self.topology.routers),
            )
    
    def stop(self) -> None:
        """
        Stop every unit in reverse dependency order and release the network.
        
        Hard teardown: shards are not drained first. Shards whose
        registration failed are stopped too. Only the first call has any
        effect.
        """
        with self._state_lock:
            if self._state == LifecycleState.STOPPED:
                return
            
            logger.info("Stopping sharded cluster", shards=len(self.topology.shards))
            
            try:
                self._graph.stop_all([*self.topology.units(), *self._unregistered_shards])
            finally:
                self._state = LifecycleState.STOPPED
                self._network.close()
            
            logger.info("Sharded cluster stopped")
    
    def register_shard(self, shard: ReplicaGroup) -> None:
        """
        Add a started shard to the cluster and wait until it is active.
        
        The shard is addressed by client addresses since the command is
        issued from the test side.
        
        Args:
            shard: Started shard
        
        Raises:
            MembershipTimeoutError: If listShards never reports it active
        """
        shard_address = replica_set_address(shard, use_named_address=False)
        
        logger.info("Adding shard", shard=shard.name, address=shard_address)
        
        with self._admin() as channel:
            admin.add_shard(channel, shard_address)
            
            await_convergence(
                lambda: admin.is_shard_active(channel, shard.name),
                description=f"shard {shard.name} to become active",
                config=self.config.membership,
            )
        
        logger.info("Shard active", shard=shard.name)
    
    def add_shard(self) -> ReplicaGroup:
        """
        Create, start and register a new shard.
        
        The shard joins the topology only after registration succeeds. If
        registration fails the shard is left running outside the topology:
        it is listed in unregistered_shards, carried by the timeout error,
        and stopped by stop().
        
        Returns:
            The new shard
        
        Raises:
            MembershipTimeoutError: If the shard never becomes active
        """
        shard = self._factory.create_shard()
        shard.start()
        
        try:
            self.register_shard(shard)
        except Exception as e:
            self._unregistered_shards.append(shard)
            if isinstance(e, MembershipTimeoutError):
                e.shard = shard
            logger.warning(
                "Shard started but not registered",
                shard=shard.name,
            )
            raise
        
        self.topology.shards.append(shard)
        
        return shard
    
    def remove_shard(self) -> ReplicaGroup:
        """
        Drain and remove the most recently added shard.
        
        removeShard is re-issued until it reports completion; only then is
        the shard dropped from the topology and stopped. On timeout the
        shard stays in the topology and keeps running.
        
        Returns:
            The removed shard
        
        Raises:
            ConfigurationError: If there are no shards
            MembershipTimeoutError: If draining never completes
        """
        if not self.topology.shards:
            raise ConfigurationError("No shards to remove")
        
        shard = self.topology.shards[-1]
        
        logger.info("Removing shard", shard=shard.name)
        
        with self._admin() as channel:
            await_convergence(
                lambda: admin.remove_shard(channel, shard.name) == admin.REMOVE_COMPLETED_STATE,
                description=f"shard {shard.name} removal to complete",
                config=self.config.membership,
            )
        
        self.topology.shards.pop()
        shard.stop()
        
        logger.info("Shard removed", shard=shard.name)
        
        return shard
    
    def enable_sharding(self, database: str) -> None:
        """
        Enable sharding for a database.
        
        Args:
            database: Database name
        """
        with self._admin(self._arbitrary_router()) as channel:
            admin.enable_sharding(channel, database)
        
        logger.info("Enabled sharding", database=database)
    
    def shard_collection(self, database: str, collection: str, key_field: str) -> None:
        """
        Shard a collection on a hashed key.
        
        Args:
            database: Database name
            collection: Collection name
            key_field: Field to hash
        """
        with self._admin(self._arbitrary_router()) as channel:
            admin.shard_collection(channel, database, collection, key_field)
        
        logger.info(
            "Sharded collection",
            namespace=f"{database}.{collection}",
            key=key_field,
        )
    
    def _arbitrary_router(self) -> Sequence[Router]:
        return self.topology.routers[:1]
    
    def _admin(self, routers: Optional[Sequence[Router]] = None):
        routers = self.topology.routers if routers is None else routers
        return self._admin_channel_factory(cluster_connection_string(routers))
    
    def _mongo_admin_channel(self, connection_string: str) -> MongoAdminChannel:
        return MongoAdminChannel(
            connection_string,
            server_selection_timeout_ms=self.config.server_selection_timeout_ms,
        )
    
    def __enter__(self) -> "ClusterController":
        self.start()
        return self
    
    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
    
    def __repr__(self) -> str:
        return (
            f"ClusterController(config_servers={self.topology.config_servers!r}, "
            f"shards={self.topology.shards!r}, "
            f"routers={self.topology.routers!r}, "
            f"state={self._state.value})"
        )
