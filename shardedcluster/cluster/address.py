"""
Address formatting for sharded cluster topologies.

Turns replica groups and routers into the strings processes and clients use
to find each other:
- Replica set addresses (``<name>/host1:port1,host2:port2``)
- Cluster connection strings (``mongodb://router1,router2``)
- Bind address lists for launch arguments
"""

from dataclasses import dataclass
from typing import Sequence

from shardedcluster.errors import ConfigurationError

DEFAULT_SCHEME = "mongodb"
LOOPBACK_ALIAS = "localhost"


@dataclass(frozen=True)
class Address:
    """
    Network address of a process.
    
    Attributes:
        host: Hostname or IP
        port: TCP port
    """
    host: str
    port: int
    
    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


def replica_set_address(group, use_named_address: bool) -> str:
    """
    Format a replica group as a replica set address.
    
    Named addresses are what peers inside the cluster network resolve;
    client addresses are what the test side can dial.
    
    Args:
        group: Replica group exposing ``name`` and ordered ``members``
        use_named_address: Use each member's named address instead of its
            client address
    
    Returns:
        ``<name>/<addr1>,<addr2>,...`` in member order
    """
    if use_named_address:
        addresses = [member.named_address for member in group.members]
    else:
        addresses = [member.client_address for member in group.members]
    
    return f"{group.name}/" + ",".join(str(address) for address in addresses)


def cluster_connection_string(
    routers: Sequence,
    scheme: str = DEFAULT_SCHEME,
) -> str:
    """
    Format the standard connection string for a sharded cluster.
    
    Only router client addresses are included; the cluster is never
    addressed through shards or config servers.
    
    Args:
        routers: Routers exposing ``client_address``
        scheme: URI scheme
    
    Returns:
        ``<scheme>://<addr1>,<addr2>,...``
    
    Raises:
        ConfigurationError: If there are no routers
    """
    if not routers:
        raise ConfigurationError("Cannot build a connection string without routers")
    
    return f"{scheme}://" + ",".join(str(router.client_address) for router in routers)


def bind_addresses(address: Address) -> str:
    """Bind list covering the loopback alias and the named host."""
    return f"{LOOPBACK_ALIAS},{address.host}"
