"""Concurrency control for the process-wide treasury state.

The nonce counter and the active RPC connection are each guarded by one
SerialLock owned by the component that holds the state.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

logger = logging.getLogger(__name__)


class LockTimeoutError(Exception):
    """Raised when a lock cannot be acquired within the timeout period."""

    pass


class SerialLock:
    """Mutually exclusive section with an acquisition timeout.

    Example:
        lock = SerialLock("nonce", timeout=30.0)
        async with lock.hold("reserve"):
            counter += 1
    """

    def __init__(self, name: str, timeout: Optional[float] = 30.0):
        """Initialize the lock.

        Args:
            name: Name of the guarded resource (for logging)
            timeout: Maximum time to wait for the lock (None = wait forever)
        """
        self.name = name
        self.timeout = timeout
        self._lock = asyncio.Lock()

    def locked(self) -> bool:
        """Return True if some coroutine currently holds the lock."""
        return self._lock.locked()

    @asynccontextmanager
    async def hold(self, operation: str = "update") -> AsyncIterator[None]:
        """Acquire the lock for the duration of the block.

        Args:
            operation: Description of the operation for logging

        Raises:
            LockTimeoutError: If the lock is not acquired within the timeout
        """
        try:
            if self.timeout:
                await asyncio.wait_for(self._lock.acquire(), timeout=self.timeout)
            else:
                await self._lock.acquire()
        except asyncio.TimeoutError:
            logger.warning(f"Lock timeout on {self.name} after {self.timeout}s: {operation}")
            raise LockTimeoutError(
                f"Could not acquire {self.name} lock within {self.timeout}s"
            )

        logger.debug(f"Lock acquired on {self.name}: {operation}")
        try:
            yield
        finally:
            self._lock.release()
            logger.debug(f"Lock released on {self.name}: {operation}")

    def __repr__(self) -> str:
        return f"SerialLock(name={self.name!r}, locked={self.locked()})"
