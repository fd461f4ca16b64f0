"""
Bounded pool of tickets limiting how many block processors run at once.
"""

import threading
from typing import Optional

from .utils import setup_logger


class Ticket:
    """
    One unit of capacity taken from a ``ConcurrencyGate``.

    Releasing is idempotent, so a ticket used as a context manager gives the
    capacity back exactly once whatever way the block exits.
    """

    def __init__(self, gate: "ConcurrencyGate"):
        self._gate = gate
        self._released = False
        self._lock = threading.Lock()

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        with self._lock:
            if self._released:
                return
            self._released = True
        self._gate._release()

    def __enter__(self) -> "Ticket":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


class ConcurrencyGate:
    """
    Thread safe counter bounded by ``max_in_flight``.

    ``acquire`` blocks until a ticket is free. Every returned ticket must be
    released once; use it as a context manager in the worker.
    """

    def __init__(self, max_in_flight: int):
        if max_in_flight < 1:
            raise ValueError("max_in_flight must be at least 1")
        self.max_in_flight = max_in_flight
        self._count = 0
        self._condition = threading.Condition()
        self.logger = setup_logger(__name__)

    @property
    def outstanding(self) -> int:
        """Number of tickets currently held."""
        with self._condition:
            return self._count

    def acquire(self, timeout: Optional[float] = None) -> Optional[Ticket]:
        """
        Take a ticket, waiting while all of them are in use.

        Args:
            timeout: Maximum seconds to wait (None waits forever)

        Returns:
            Optional[Ticket]: The ticket, or None if the timeout expired
        """
        with self._condition:
            if not self._condition.wait_for(lambda: self._count < self.max_in_flight, timeout):
                return None
            self._count += 1
            self.logger.debug(f"Block processor count: {self._count}")
        return Ticket(self)

    def _release(self) -> None:
        with self._condition:
            if self._count == 0:
                raise RuntimeError("Ticket released more times than acquired")
            self._count -= 1
            self.logger.debug(f"Block processor count: {self._count}")
            self._condition.notify_all()

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        """
        Block until every ticket has been released.

        Returns:
            bool: False if the timeout expired first
        """
        with self._condition:
            return self._condition.wait_for(lambda: self._count == 0, timeout)
