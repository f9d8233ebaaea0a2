"""Process-wide nonce sequencing for the treasury account.

EVM accounts need gap-free, strictly sequential nonces. Concurrent
transfers reserve numbers here under a lock; a reservation that never
reaches the network is handed back with release(), which only rolls the
counter back when no later reservation has been made since.
"""

import logging
from typing import Optional, Protocol

from treasury_relay.utils.locks import SerialLock

logger = logging.getLogger(__name__)

UNKNOWN_NONCE = -1


class TransactionCountSource(Protocol):
    async def get_transaction_count(self) -> int: ...


class NonceSequencer:
    """Monotonic counter of the next unused nonce."""

    def __init__(self, lock_timeout: Optional[float] = 30.0):
        self._counter = UNKNOWN_NONCE
        self._lock = SerialLock("nonce", timeout=lock_timeout)

    @property
    def value(self) -> int:
        """Next nonce to hand out, or -1 when unknown."""
        return self._counter

    @property
    def initialized(self) -> bool:
        return self._counter >= 0

    async def sync(self, network_count: int) -> None:
        """Adopt the transaction count reported by the network.

        A known counter only moves forward; use invalidate() to force a
        fresh read when the local value is ahead of the network.
        """
        async with self._lock.hold("sync"):
            if not self.initialized:
                self._counter = network_count
            elif network_count > self._counter:
                logger.warning(
                    f"Nonce behind network ({self._counter} < {network_count}), catching up"
                )
                self._counter = network_count

    async def reserve(self, source: TransactionCountSource) -> int:
        """Reserve the next nonce.

        Args:
            source: Connection used to read the on-chain count on cold start

        Returns:
            The reserved nonce (the counter value before incrementing)
        """
        async with self._lock.hold("reserve"):
            if not self.initialized:
                self._counter = await source.get_transaction_count()
                logger.info(f"Nonce synchronized from network: {self._counter}")
            nonce = self._counter
            self._counter += 1
            return nonce

    async def release(self, nonce: int) -> bool:
        """Hand back a reservation that never reached the network.

        Returns:
            True if the counter was rolled back
        """
        async with self._lock.hold("release"):
            if self.initialized and nonce == self._counter - 1:
                self._counter -= 1
                return True
            logger.debug(f"Nonce {nonce} not released (counter at {self._counter})")
            return False

    async def invalidate(self) -> None:
        """Forget the local counter; the next reservation re-reads the network."""
        async with self._lock.hold("invalidate"):
            logger.warning(f"Nonce counter invalidated at {self._counter}")
            self._counter = UNKNOWN_NONCE
