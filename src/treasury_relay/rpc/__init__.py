"""RPC endpoint pool and connection management."""

from treasury_relay.rpc.connection import Connection, ConnectionManager
from treasury_relay.rpc.endpoints import Endpoint, EndpointPool

__all__ = [
    "Connection",
    "ConnectionManager",
    "Endpoint",
    "EndpointPool",
]
