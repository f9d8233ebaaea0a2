"""Ordered pool of interchangeable RPC endpoints."""

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Endpoint:
    """One RPC endpoint for a given chain."""
    url: str
    chain_id: int

    def __str__(self) -> str:
        return self.url


class EndpointPool:
    """Cyclic list of endpoints with a cursor on the current one."""

    def __init__(self, urls: list[str], chain_id: int):
        if not urls:
            raise ValueError("At least one RPC URL is required")
        self._endpoints = tuple(Endpoint(url=url, chain_id=chain_id) for url in urls)
        self._cursor = 0

    def __len__(self) -> int:
        return len(self._endpoints)

    @property
    def cursor(self) -> int:
        return self._cursor

    def current(self) -> Endpoint:
        """Endpoint the cursor points at."""
        return self._endpoints[self._cursor % len(self._endpoints)]

    def peek(self, offset: int = 1) -> Endpoint:
        """Endpoint `offset` positions after the current one, without moving."""
        return self._endpoints[(self._cursor + offset) % len(self._endpoints)]

    def advance(self) -> Endpoint:
        """Move the cursor to the next endpoint and return it."""
        self._cursor = (self._cursor + 1) % len(self._endpoints)
        endpoint = self.current()
        logger.debug(f"Endpoint cursor advanced to {endpoint}")
        return endpoint

    def __iter__(self):
        return iter(self._endpoints)
