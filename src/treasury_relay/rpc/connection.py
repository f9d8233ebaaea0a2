"""Active network connection and RPC failover.

A Connection binds one AsyncWeb3 client to one endpoint and the treasury
signer. The ConnectionManager keeps exactly one active Connection for the
process and replaces it (never mutates it) when the endpoint changes.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

import aiohttp
from web3 import AsyncWeb3, Web3
from web3.exceptions import ProviderConnectionError, TimeExhausted, Web3Exception

from treasury_relay.rpc.endpoints import Endpoint, EndpointPool
from treasury_relay.signing.base import SignerBackend
from treasury_relay.transfer.base import (
    ConfirmationTimeoutError,
    ConnectivityError,
    NetworkFeeData,
    RpcResponseError,
    SubmissionRejectedError,
)
from treasury_relay.transfer.nonce import NonceSequencer
from treasury_relay.utils.locks import SerialLock

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Errors meaning "the endpoint could not be reached", as opposed to the node
# answering with an error.
CONNECTIVITY_ERRORS = (
    aiohttp.ClientError,
    asyncio.TimeoutError,
    OSError,
    ProviderConnectionError,
)


class Connection:
    """Live client on one endpoint, signing as the treasury."""

    def __init__(
        self,
        endpoint: Endpoint,
        signer: SignerBackend,
        request_timeout: float = 30.0,
    ):
        self.endpoint = endpoint
        self.signer = signer
        self._w3 = AsyncWeb3(
            AsyncWeb3.AsyncHTTPProvider(
                endpoint.url,
                request_kwargs={"timeout": aiohttp.ClientTimeout(total=request_timeout)},
            )
        )

    @property
    def address(self) -> str:
        return self.signer.address

    async def _call(self, what: str, awaitable: Awaitable[T]) -> T:
        """Await an RPC call, mapping endpoint failures to TransferError subclasses.

        Unreachable endpoints raise ConnectivityError, error replies raise
        RpcResponseError. TimeExhausted is left for wait_for_receipt.
        """
        try:
            return await awaitable
        except CONNECTIVITY_ERRORS as e:
            raise ConnectivityError(f"{what} failed on {self.endpoint}: {e}") from e
        except TimeExhausted:
            raise
        except (Web3Exception, ValueError) as e:
            raise RpcResponseError(f"{what} failed on {self.endpoint}: {e}") from e

    async def verify_chain(self) -> None:
        """Refuse endpoints serving a different chain."""
        chain_id = await self._call("eth_chainId", self._w3.eth.chain_id)
        if chain_id != self.endpoint.chain_id:
            raise ConnectivityError(
                f"{self.endpoint} reports chain {chain_id}, expected {self.endpoint.chain_id}"
            )

    async def get_balance(self, address: Optional[str] = None) -> int:
        """Balance in wei (treasury address by default)."""
        target = Web3.to_checksum_address(address or self.address)
        return int(await self._call("eth_getBalance", self._w3.eth.get_balance(target)))

    async def get_transaction_count(self, block_identifier: str = "pending") -> int:
        """Next nonce as reported by the network."""
        return int(await self._call(
            "eth_getTransactionCount",
            self._w3.eth.get_transaction_count(self.address, block_identifier),
        ))

    async def get_fee_data(self) -> NetworkFeeData:
        """Read base fee, gas price and suggested priority fee."""
        block = await self._call("eth_getBlockByNumber", self._w3.eth.get_block("latest"))
        base_fee = block.get("baseFeePerGas")
        gas_price = await self._call("eth_gasPrice", self._w3.eth.gas_price)

        try:
            priority_fee = await self._call(
                "eth_maxPriorityFeePerGas", self._w3.eth.max_priority_fee
            )
        except RpcResponseError as e:
            logger.debug(f"{self.endpoint} did not suggest a priority fee: {e}")
            priority_fee = None

        # Same suggestion rule as common wallets: room for the base fee to double.
        max_fee = None
        if base_fee is not None and priority_fee is not None:
            max_fee = 2 * int(base_fee) + int(priority_fee)

        return NetworkFeeData(
            gas_price=int(gas_price) if gas_price is not None else None,
            base_fee=int(base_fee) if base_fee is not None else None,
            max_priority_fee=int(priority_fee) if priority_fee is not None else None,
            max_fee=max_fee,
        )

    async def send_transaction(self, tx: dict) -> str:
        """Sign and broadcast a transaction, returning its hash.

        Raises:
            ConnectivityError: If the endpoint could not be reached
            SubmissionRejectedError: If the node refused the transaction
        """
        tx = dict(tx)
        tx["to"] = Web3.to_checksum_address(tx["to"])
        raw = self.signer.sign_transaction(tx)
        try:
            tx_hash = await self._call(
                "eth_sendRawTransaction", self._w3.eth.send_raw_transaction(raw)
            )
        except RpcResponseError as e:
            raise SubmissionRejectedError(f"Node rejected transaction: {e}") from e
        return Web3.to_hex(tx_hash)

    async def wait_for_receipt(
        self, tx_hash: str, timeout: float, poll_latency: float = 2.0
    ) -> Any:
        """Block until the transaction is included.

        Raises:
            ConfirmationTimeoutError: If no receipt arrives within `timeout`
        """
        try:
            return await self._call(
                "eth_getTransactionReceipt",
                self._w3.eth.wait_for_transaction_receipt(
                    tx_hash, timeout=timeout, poll_latency=poll_latency
                ),
            )
        except TimeExhausted as e:
            raise ConfirmationTimeoutError(
                f"No receipt for {tx_hash} after {timeout}s", tx_hash=tx_hash
            ) from e

    async def close(self) -> None:
        await self._w3.provider.disconnect()

    def __repr__(self) -> str:
        return f"Connection(endpoint={self.endpoint.url})"


ConnectionFactory = Callable[[Endpoint, SignerBackend, float], Connection]


class ConnectionManager:
    """Owns the single active Connection and cycles endpoints on failure."""

    def __init__(
        self,
        pool: EndpointPool,
        signer: SignerBackend,
        sequencer: NonceSequencer,
        connection_factory: Optional[ConnectionFactory] = None,
        request_timeout: float = 30.0,
        lock_timeout: Optional[float] = 30.0,
    ):
        self._pool = pool
        self._signer = signer
        self._sequencer = sequencer
        self._factory = connection_factory or Connection
        self._request_timeout = request_timeout
        self._lock = SerialLock("connection", timeout=lock_timeout)
        self._active: Optional[Connection] = None

    @property
    def treasury_address(self) -> str:
        """Canonical treasury address used by all callers."""
        return self._signer.address

    @property
    def active(self) -> Optional[Connection]:
        return self._active

    @property
    def pool(self) -> EndpointPool:
        return self._pool

    async def acquire(self) -> Connection:
        """Return the active connection, initializing it on first use."""
        connection = self._active
        if connection is not None:
            return connection

        async with self._lock.hold("initialize"):
            if self._active is None:
                self._active = await self._connect()
            return self._active

    async def failover(self, stale: Connection) -> Connection:
        """Replace a connection that stopped working.

        Concurrent callers reporting the same stale connection wait for the
        one reconnect in flight and share its result.
        """
        async with self._lock.hold("failover"):
            if self._active is not None and self._active is not stale:
                return self._active

            if self._active is stale:
                logger.warning(f"Failing over from {stale.endpoint}")
                self._active = None
                await self._dispose(stale)
                self._pool.advance()

            self._active = await self._connect()
            return self._active

    async def open_secondary(self) -> Connection:
        """Open an independent connection on the next endpoint in the pool.

        The caller owns the returned connection and must close it.

        Raises:
            ConnectivityError: If the pool has no second endpoint, or it is unreachable
        """
        if len(self._pool) < 2:
            logger.warning("Secondary connection requested with a single RPC endpoint")
            raise ConnectivityError("A secondary connection needs at least two RPC endpoints")

        endpoint = self._pool.peek(1)
        connection = self._factory(endpoint, self._signer, self._request_timeout)
        try:
            await connection.verify_chain()
        except Exception:
            await self._dispose(connection)
            raise
        return connection

    async def close(self) -> None:
        async with self._lock.hold("close"):
            if self._active is not None:
                await self._dispose(self._active)
                self._active = None

    async def _connect(self) -> Connection:
        """Try endpoints in pool order, at most twice around the pool."""
        attempts = 2 * len(self._pool)
        last_error: Optional[Exception] = None

        for attempt in range(1, attempts + 1):
            endpoint = self._pool.current()
            connection = self._factory(endpoint, self._signer, self._request_timeout)
            try:
                await connection.verify_chain()
                count = await connection.get_transaction_count()
            except Exception as e:
                last_error = e
                logger.error(
                    f"[INIT] Attempt {attempt}/{attempts} on {endpoint} failed: {e}"
                )
                await self._dispose(connection)
                self._pool.advance()
                continue

            await self._sequencer.sync(count)
            logger.info(
                f"[INIT] Connected to {endpoint} as {self.treasury_address}. "
                f"Starting nonce: {self._sequencer.value}"
            )
            return connection

        raise ConnectivityError(
            f"All {len(self._pool)} RPC endpoints failed after {attempts} attempts: {last_error}"
        )

    @staticmethod
    async def _dispose(connection: Connection) -> None:
        try:
            await connection.close()
        except Exception as e:
            logger.debug(f"Error closing {connection!r}: {e}")
