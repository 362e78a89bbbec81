"""
Polling until an eventually-consistent cluster view converges.

Both shard registration and shard removal wait on the admin channel with the
same fixed-interval, bounded-deadline loop defined here.
"""

import time
from dataclasses import dataclass
from typing import Callable

from shardedcluster.errors import MembershipTimeoutError
from shardedcluster.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class PollConfig:
    """
    Configuration for convergence polling.
    
    Attributes:
        poll_interval_ms: Delay between predicate evaluations
        timeout_ms: Total time allowed before giving up
    """
    poll_interval_ms: int = 1000   # 1 second
    timeout_ms: int = 30000        # 30 seconds


def await_convergence(
    predicate: Callable[[], bool],
    description: str,
    config: PollConfig,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """
    Block until predicate returns True or the deadline passes.
    
    The predicate is evaluated immediately, then once per poll interval.
    Exceptions raised by the predicate propagate unchanged.
    
    Args:
        predicate: Check against the current cluster view
        description: What is being waited for, used in logs and errors
        config: Poll interval and timeout
        clock: Monotonic clock in seconds
        sleep: Sleep function in seconds
    
    Returns:
        Number of predicate evaluations
    
    Raises:
        MembershipTimeoutError: If the predicate never held before the deadline
    """
    started_at = clock()
    deadline = started_at + config.timeout_ms / 1000.0
    interval = config.poll_interval_ms / 1000.0
    attempts = 0
    
    while True:
        attempts += 1
        if predicate():
            logger.debug(
                "Converged",
                description=description,
                attempts=attempts,
                elapsed_ms=int((clock() - started_at) * 1000),
            )
            return attempts
        
        remaining = deadline - clock()
        if remaining <= 0:
            elapsed_ms = int((clock() - started_at) * 1000)
            
            logger.error(
                "Convergence timed out",
                description=description,
                attempts=attempts,
                elapsed_ms=elapsed_ms,
            )
            raise MembershipTimeoutError(description, elapsed_ms)
        
        sleep(min(interval, remaining))
