"""
Dependency-ordered lifecycle execution.

Starts units so that every dependency is fully started first, and stops them
in reverse so that every dependent is fully stopped first. Units on the same
level of the graph are started or stopped concurrently.
"""

from concurrent.futures import ThreadPoolExecutor
from types import MappingProxyType
from typing import Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence

from shardedcluster.cluster.lifecycle import ManagedUnit
from shardedcluster.errors import CycleError
from shardedcluster.utils.logging import get_logger

logger = get_logger(__name__)


class ProcessGraph:
    """
    Executes start/stop over units respecting a fixed dependency relation.
    
    The relation is frozen at construction. Edges to units outside the set
    passed to start_all/stop_all are ignored, so units that have left the
    topology do not constrain ordering.
    
    Failures are not rolled back: units started before a failing unit are
    left running and the caller decides what to tear down.
    """
    
    def __init__(
        self,
        dependencies: Mapping[ManagedUnit, Iterable[ManagedUnit]],
        max_workers: Optional[int] = None,
    ):
        """
        Initialize process graph.
        
        Args:
            dependencies: Unit -> units it requires to be started first
            max_workers: Concurrency per level (None = one thread per unit,
                1 = sequential)
        """
        self._dependencies: Mapping[ManagedUnit, FrozenSet[ManagedUnit]] = MappingProxyType(
            {unit: frozenset(deps) for unit, deps in dependencies.items()}
        )
        self.max_workers = max_workers
    
    @property
    def dependencies(self) -> Mapping[ManagedUnit, FrozenSet[ManagedUnit]]:
        """Read-only dependency relation."""
        return self._dependencies
    
    def levels(self, units: Iterable[ManagedUnit]) -> List[List[ManagedUnit]]:
        """
        Group units into start levels.
        
        Every unit in level N depends only on units in levels < N. Input
        order is preserved within a level.
        
        Args:
            units: Units to order
        
        Returns:
            Levels, dependencies first
        
        Raises:
            CycleError: If the relation restricted to units is cyclic
        """
        ordered = list(dict.fromkeys(units))
        members = set(ordered)
        
        pending: Dict[ManagedUnit, set] = {
            unit: set(self._dependencies.get(unit, ())) & members
            for unit in ordered
        }
        
        levels: List[List[ManagedUnit]] = []
        while pending:
            ready = [unit for unit in ordered if unit in pending and not pending[unit]]
            
            if not ready:
                raise CycleError(unit.name for unit in pending)
            
            levels.append(ready)
            for unit in ready:
                del pending[unit]
            for remaining in pending.values():
                remaining.difference_update(ready)
        
        return levels
    
    def start_all(self, units: Iterable[ManagedUnit]) -> None:
        """
        Start all units, dependencies first.
        
        Already-started units are skipped.
        
        Args:
            units: Units to start
        
        Raises:
            CycleError: If the dependency relation is cyclic
            Exception: First failure raised by a unit's start()
        """
        levels = self.levels(units)
        
        logger.info(
            "Starting units",
            units=sum(len(level) for level in levels),
            levels=len(levels),
        )
        
        for level in levels:
            self._run_level(
                [unit for unit in level if not unit.is_started],
                lambda unit: unit.start(),
                "start",
            )
    
    def stop_all(self, units: Iterable[ManagedUnit]) -> None:
        """
        Stop all units, dependents first.
        
        Units that are not running are skipped, so this is safe to call
        unconditionally during teardown.
        
        Args:
            units: Units to stop
        
        Raises:
            CycleError: If the dependency relation is cyclic
            Exception: First failure raised by a unit's stop()
        """
        levels = self.levels(units)
        
        logger.info(
            "Stopping units",
            units=sum(len(level) for level in levels),
            levels=len(levels),
        )
        
        for level in reversed(levels):
            self._run_level(
                [unit for unit in level if unit.is_started],
                lambda unit: unit.stop(),
                "stop",
            )
    
    def _run_level(
        self,
        level: Sequence[ManagedUnit],
        action: Callable[[ManagedUnit], object],
        action_name: str,
    ) -> None:
        """
        Run an action over one level, waiting for all units to finish.
        
        Args:
            level: Units with no ordering constraint between them
            action: start or stop callable
            action_name: Name for logging
        """
        if not level:
            return
        
        if len(level) == 1 or self.max_workers == 1:
            for unit in level:
                self._run_one(unit, action, action_name)
            return
        
        workers = self.max_workers or len(level)
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [
                executor.submit(self._run_one, unit, action, action_name)
                for unit in level
            ]
        
        for future in futures:
            future.result()
    
    def _run_one(
        self,
        unit: ManagedUnit,
        action: Callable[[ManagedUnit], object],
        action_name: str,
    ) -> None:
        try:
            action(unit)
        except Exception as e:
            logger.error(
                f"Failed to {action_name} unit",
                unit=unit.name,
                error=str(e),
            )
            raise
