"""
Administrative command channel to a sharded cluster.

A channel is opened against the routers' connection string for the duration
of one operation and closed on every exit path. The helpers below encode the
sharding commands and decode the response fields the controller relies on.
"""

from typing import Any, Callable, ContextManager, List, Mapping, Optional, Protocol

from pymongo import MongoClient
from pymongo.errors import PyMongoError

from shardedcluster.utils.logging import get_logger

logger = get_logger(__name__)

ACTIVE_SHARD_STATE = 1
REMOVE_COMPLETED_STATE = "completed"


class AdminChannel(Protocol):
    """Handle to the admin namespace of a cluster."""
    
    def command(self, name: str, value: Any = 1, **params: Any) -> Mapping[str, Any]: ...


AdminChannelFactory = Callable[[str], ContextManager[AdminChannel]]


class MongoAdminChannel:
    """
    pymongo-backed admin channel.
    
    Usage:
        with MongoAdminChannel("mongodb://host:27017") as admin:
            admin.command("listShards")
    """
    
    def __init__(
        self,
        connection_string: str,
        server_selection_timeout_ms: int = 30000,
    ):
        """
        Initialize admin channel.
        
        Args:
            connection_string: Cluster connection string (routers only)
            server_selection_timeout_ms: pymongo server selection timeout
        """
        self.connection_string = connection_string
        self.server_selection_timeout_ms = server_selection_timeout_ms
        self._client: Optional[MongoClient] = None
    
    def __enter__(self) -> "MongoAdminChannel":
        self._client = MongoClient(
            self.connection_string,
            serverSelectionTimeoutMS=self.server_selection_timeout_ms,
        )
        return self
    
    def __exit__(self, exc_type, exc, tb) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
    
    def command(self, name: str, value: Any = 1, **params: Any) -> Mapping[str, Any]:
        """
        Run a command against the admin database.
        
        Args:
            name: Command name (first key of the command document)
            value: Command value
            **params: Additional command fields
        
        Returns:
            Response document
        """
        if self._client is None:
            raise RuntimeError("Admin channel is not open")
        
        try:
            return self._client.admin.command(name, value, **params)
        except PyMongoError as e:
            logger.error(
                "Admin command failed",
                command=name,
                error=str(e),
            )
            raise


def add_shard(admin: AdminChannel, shard_address: str) -> Mapping[str, Any]:
    """Issue addShard for a replica set address."""
    return admin.command("addShard", shard_address)


def list_shards(admin: AdminChannel) -> List[Mapping[str, Any]]:
    """Return the shard records currently known to the cluster."""
    return list(admin.command("listShards").get("shards", []))


def is_shard_active(admin: AdminChannel, shard_name: str) -> bool:
    """Check whether listShards reports shard_name in the active state."""
    return any(
        record.get("_id") == shard_name and record.get("state") == ACTIVE_SHARD_STATE
        for record in list_shards(admin)
    )


def remove_shard(admin: AdminChannel, shard_name: str) -> str:
    """
    Issue removeShard and return the reported draining state.
    
    The command is repeated by callers until the state reaches
    REMOVE_COMPLETED_STATE.
    """
    return admin.command("removeShard", shard_name).get("state")


def enable_sharding(admin: AdminChannel, database: str) -> Mapping[str, Any]:
    """Enable sharding for a database."""
    return admin.command("enableSharding", database)


def shard_collection(
    admin: AdminChannel,
    database: str,
    collection: str,
    key_field: str,
) -> Mapping[str, Any]:
    """Shard a collection on a hashed key."""
    return admin.command(
        "shardCollection",
        f"{database}.{collection}",
        key={key_field: "hashed"},
    )
