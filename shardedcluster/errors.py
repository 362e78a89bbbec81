"""
Exception hierarchy for sharded cluster orchestration.
"""


class ClusterError(Exception):
    """Base class for all cluster orchestration errors."""
    pass


class ConfigurationError(ClusterError):
    """Topology or call is invalid for the current cluster shape."""
    pass


class CycleError(ClusterError):
    """
    Dependency relation between units contains a cycle.
    
    Attributes:
        units: Names of the units that could not be ordered
    """
    
    def __init__(self, units):
        self.units = sorted(units)
        super().__init__(f"Dependency cycle between units: {', '.join(self.units)}")


class MembershipTimeoutError(ClusterError):
    """
    Cluster membership change was not observed before the deadline.
    
    Attributes:
        description: What was being waited for
        elapsed_ms: Time spent polling in milliseconds
        shard: Shard left running outside the topology, if any
    """
    
    def __init__(self, description: str, elapsed_ms: int, shard=None):
        self.description = description
        self.elapsed_ms = elapsed_ms
        self.shard = shard
        super().__init__(f"Timed out after {elapsed_ms}ms waiting for {description}")
