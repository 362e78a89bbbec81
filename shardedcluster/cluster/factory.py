"""
Construction of shard, config server and router units.

Builds the in-memory topology: names, namespaces, launch arguments and the
router dependency edges. No process is started here.
"""

from types import MappingProxyType
from typing import Callable, Dict, FrozenSet, List, Mapping, Sequence

from shardedcluster.cluster.address import bind_addresses, replica_set_address
from shardedcluster.cluster.lifecycle import (
    ManagedUnit,
    NetworkHandle,
    ProcessHandle,
    ReplicaGroup,
    ReplicaSetHandle,
    Router,
)
from shardedcluster.utils.logging import get_logger

logger = get_logger(__name__)

SHARD_ROLE_FLAG = "--shardsvr"
CONFIG_ROLE_FLAG = "--configsvr"
CONFIG_REPLICA_SET_NAME = "configdb"
ROUTER_EXECUTABLE = "mongos"

ReplicaSetBuilder = Callable[..., ReplicaSetHandle]
ProcessBuilder = Callable[..., ProcessHandle]


def member_arguments(role_flag: str, replica_set_name: str, member: ProcessHandle) -> List[str]:
    """
    Launch arguments for one replica set member.
    
    Args:
        role_flag: --shardsvr or --configsvr
        replica_set_name: Replica set the member joins
        member: Member process
    
    Returns:
        Flat argument list
    """
    address = member.named_address
    return [
        role_flag,
        "--replSet", replica_set_name,
        "--port", str(address.port),
        "--bind_ip", bind_addresses(address),
    ]


class ShardGroupFactory:
    """
    Builds replica groups and routers for one cluster.
    
    Shard names are allocated from a counter that only ever increases, so a
    name is never reused after its shard has been removed; routers may still
    hold the old name in cached metadata.
    """
    
    def __init__(
        self,
        network: NetworkHandle,
        replica_set_builder: ReplicaSetBuilder,
        process_builder: ProcessBuilder,
        replica_count: int = 1,
        namespace_prefix: str = "test-mongo",
        router_prefix: str = "test-mongos",
    ):
        """
        Initialize factory.
        
        Args:
            network: Network every process joins
            replica_set_builder: Creates external replica set handles
            process_builder: Creates external process handles
            replica_count: Members per replica group
            namespace_prefix: Prefix for replica group namespaces
            router_prefix: Router name prefix, followed by the 1-based index
        """
        self.network = network
        self.replica_set_builder = replica_set_builder
        self.process_builder = process_builder
        self.replica_count = replica_count
        self.namespace_prefix = namespace_prefix
        self.router_prefix = router_prefix
        
        self._shards_created = 0
        self._dependencies: Dict[ManagedUnit, FrozenSet[ManagedUnit]] = {}
    
    @property
    def shards_created(self) -> int:
        """Number of shards allocated over the cluster's lifetime."""
        return self._shards_created
    
    @property
    def dependencies(self) -> Mapping[ManagedUnit, FrozenSet[ManagedUnit]]:
        """Router dependency edges recorded so far."""
        return MappingProxyType(self._dependencies)
    
    def create_shard(self) -> ReplicaGroup:
        """
        Allocate the next shard replica group.
        
        Returns:
            Shard named shard<N>
        """
        self._shards_created += 1
        index = self._shards_created
        name = f"shard{index}"
        
        handle = self.replica_set_builder(
            network=self.network,
            namespace=f"{self.namespace_prefix}-shard{index}-replica",
            name=name,
            member_count=self.replica_count,
            config_server=False,
        )
        shard = ReplicaGroup(handle, is_config_role=False)
        self._configure_members(shard, SHARD_ROLE_FLAG)
        
        logger.info(
            "Created shard",
            shard=shard.name,
            members=len(shard.members),
        )
        
        return shard
    
    def create_config_servers(self) -> ReplicaGroup:
        """
        Build the config server replica group.
        
        Returns:
            Config server group named configdb
        """
        handle = self.replica_set_builder(
            network=self.network,
            namespace=f"{self.namespace_prefix}-configdb",
            name=CONFIG_REPLICA_SET_NAME,
            member_count=self.replica_count,
            config_server=True,
        )
        config_servers = ReplicaGroup(handle, is_config_role=True)
        self._configure_members(config_servers, CONFIG_ROLE_FLAG)
        
        logger.info(
            "Created config servers",
            replica_set=config_servers.name,
            members=len(config_servers.members),
        )
        
        return config_servers
    
    def create_router(
        self,
        index: int,
        config_servers: ReplicaGroup,
        shards: Sequence[ReplicaGroup],
    ) -> Router:
        """
        Build a router and wire its dependencies.
        
        The router depends on the config servers and on every shard passed
        in. Shards added later are discovered through membership, not wired
        here.
        
        Args:
            index: 1-based router number
            config_servers: Config server group
            shards: Shards known at construction time
        
        Returns:
            Router unit
        """
        handle = self.process_builder(
            network=self.network,
            name=f"{self.router_prefix}{index}",
        )
        router = Router(handle)
        
        address = router.named_address
        handle.set_command(
            ROUTER_EXECUTABLE,
            "--port", str(address.port),
            "--bind_ip", bind_addresses(address),
            "--configdb", replica_set_address(config_servers, use_named_address=True),
        )
        
        self._dependencies[router] = frozenset([*shards, config_servers])
        
        logger.info(
            "Created router",
            router=router.name,
            shards=[shard.name for shard in shards],
        )
        
        return router
    
    def _configure_members(self, group: ReplicaGroup, role_flag: str) -> None:
        for member in group.members:
            member.set_command(*member_arguments(role_flag, group.name, member))
