"""
Lifecycle tracking for startable cluster units.

External replica sets and processes are wrapped in managed units that carry
a not_started/started/stopped state, so that repeated start/stop calls are
no-ops and the process graph can skip units that are already up.
"""

import threading
from enum import Enum
from typing import Any, Protocol, Sequence

from shardedcluster.cluster.address import Address
from shardedcluster.errors import ConfigurationError
from shardedcluster.utils.logging import get_logger

logger = get_logger(__name__)


class LifecycleState(str, Enum):
    """Lifecycle states of a unit."""
    
    NOT_STARTED = "not_started"  # Never started
    STARTED = "started"          # start() completed
    STOPPED = "stopped"          # stop() completed after a start


class ProcessHandle(Protocol):
    """External process handle supplied by the container runtime."""
    
    name: str
    named_address: Address
    client_address: Address
    
    def set_command(self, *args: str) -> None: ...
    
    def start(self) -> None: ...
    
    def stop(self) -> None: ...


class ReplicaSetHandle(Protocol):
    """External replica set handle supplied by the container runtime."""
    
    name: str
    members: Sequence[ProcessHandle]
    
    def start(self) -> None: ...
    
    def stop(self) -> None: ...


class NetworkHandle(Protocol):
    """Shared network all cluster processes join."""
    
    def close(self) -> None: ...


class ManagedUnit:
    """
    Startable/stoppable unit with idempotent transitions.
    
    Stopping a unit that was never started is a silent no-op. A stopped unit
    can be started again.
    """
    
    def __init__(self, name: str, handle: Any):
        """
        Initialize managed unit.
        
        Args:
            name: Logical unit name
            handle: External handle with start() and stop()
        """
        self.name = name
        self.handle = handle
        self._state = LifecycleState.NOT_STARTED
        self._lock = threading.Lock()
    
    @property
    def state(self) -> LifecycleState:
        """Current lifecycle state."""
        return self._state
    
    @property
    def is_started(self) -> bool:
        return self._state == LifecycleState.STARTED
    
    def start(self) -> bool:
        """
        Start the unit unless it is already started.
        
        Returns:
            True if the handle was actually started
        """
        with self._lock:
            if self._state == LifecycleState.STARTED:
                return False
            
            logger.debug("Starting unit", unit=self.name)
            self.handle.start()
            self._state = LifecycleState.STARTED
            
            logger.info("Unit started", unit=self.name)
            return True
    
    def stop(self) -> bool:
        """
        Stop the unit if it is running.
        
        Returns:
            True if the handle was actually stopped
        """
        with self._lock:
            if self._state != LifecycleState.STARTED:
                return False
            
            logger.debug("Stopping unit", unit=self.name)
            self.handle.stop()
            self._state = LifecycleState.STOPPED
            
            logger.info("Unit stopped", unit=self.name)
            return True
    
    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, state={self._state.value})"


class ReplicaGroup(ManagedUnit):
    """
    Named group of member processes presenting one replica role.
    
    Attributes:
        is_config_role: Whether the group serves cluster metadata
    """
    
    def __init__(self, handle: ReplicaSetHandle, is_config_role: bool = False):
        members = tuple(handle.members)
        if not members:
            raise ConfigurationError(f"Replica group {handle.name!r} has no members")
        
        super().__init__(handle.name, handle)
        self.members: Sequence[ProcessHandle] = members
        self.is_config_role = is_config_role


class Router(ManagedUnit):
    """Stateless routing process."""
    
    def __init__(self, handle: ProcessHandle):
        super().__init__(handle.name, handle)
    
    @property
    def named_address(self) -> Address:
        return self.handle.named_address
    
    @property
    def client_address(self) -> Address:
        return self.handle.client_address

