"""Transfer engine: the single path every treasury payout goes through.

Assembles, signs, submits and confirms one value transfer. A reserved
nonce is handed back whenever the transaction fails before leaving the
process; once broadcast, the nonce belongs to the network.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from web3 import Web3

from treasury_relay.transfer.base import (
    ConfirmationTimeoutError,
    ConnectivityError,
    FeeQuote,
    InsufficientFundsError,
    MinedRevertedError,
    SubmissionRejectedError,
    TransferError,
    TransferOutcome,
    TransferRequest,
    wei_to_eth,
)
from treasury_relay.transfer.fees import FeeEstimator
from treasury_relay.transfer.nonce import NonceSequencer
from treasury_relay.utils.locks import LockTimeoutError

if TYPE_CHECKING:
    from treasury_relay.rpc.connection import Connection, ConnectionManager

logger = logging.getLogger(__name__)

# Node error fragments meaning the local nonce no longer matches the chain.
NONCE_DESYNC_MARKERS = ("nonce too low", "nonce too high", "already known")


def _is_nonce_desync(error: Exception) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in NONCE_DESYNC_MARKERS)


def _gwei(wei: int) -> str:
    return f"{Web3.from_wei(wei, 'gwei')}"


class TransferEngine:
    """Executes treasury transfers."""

    def __init__(
        self,
        connections: "ConnectionManager",
        sequencer: NonceSequencer,
        fees: FeeEstimator,
        gas_reserve: int,
        dust_threshold: int,
        receipt_timeout: float = 300.0,
        receipt_poll_interval: float = 2.0,
    ):
        """Initialize engine.

        Args:
            connections: Provider of the active connection
            sequencer: Nonce sequencer for the treasury account
            fees: Fee estimator
            gas_reserve: Balance always left in the treasury (wei)
            dust_threshold: Amounts at or below this are refused (wei)
            receipt_timeout: Maximum wait for inclusion (seconds)
            receipt_poll_interval: Receipt polling interval (seconds)
        """
        self.connections = connections
        self.sequencer = sequencer
        self.fees = fees
        self.gas_reserve = gas_reserve
        self.dust_threshold = dust_threshold
        self.receipt_timeout = receipt_timeout
        self.receipt_poll_interval = receipt_poll_interval

    def resolve_amount(self, requested: int, balance: int, quote: FeeQuote) -> int:
        """Amount to send after paying for gas and keeping the reserve.

        Raises:
            InsufficientFundsError: If the result is at or below dust
        """
        affordable = balance - quote.max_cost - self.gas_reserve
        amount = affordable if requested <= 0 else min(requested, affordable)

        if amount <= self.dust_threshold:
            raise InsufficientFundsError(
                f"Insufficient treasury balance ({wei_to_eth(balance):.6f} ETH) "
                f"or amount too low after reserving gas."
            )
        return amount

    async def transfer(self, request: TransferRequest) -> TransferOutcome:
        """Send value from the treasury and wait for confirmation."""
        try:
            connection, tx_hash, amount = await self._submit(request)
            receipt = await self._confirm(connection, tx_hash)
        except TransferError as e:
            return TransferOutcome.from_error(e)
        except LockTimeoutError as e:
            return TransferOutcome.from_error(SubmissionRejectedError(str(e)))

        return TransferOutcome.confirmed(tx_hash=tx_hash, amount_wei=amount, receipt=receipt)

    async def _submit(self, request: TransferRequest) -> tuple["Connection", str, int]:
        connection = await self.connections.acquire()

        try:
            nonce = await self.sequencer.reserve(connection)
        except ConnectivityError:
            await self.recover(connection)
            raise

        try:
            balance = await connection.get_balance()
            fee_data = await connection.get_fee_data()
            quote = self.fees.compute(request.overrides, fee_data)
            amount = self.resolve_amount(request.amount_wei, balance, quote)

            tx = {
                "type": 2,
                "chainId": connection.endpoint.chain_id,
                "nonce": nonce,
                "to": request.destination,
                "value": amount,
                "gas": quote.gas_limit,
                "maxFeePerGas": quote.max_fee,
                "maxPriorityFeePerGas": quote.priority_fee,
            }
            tx_hash = await connection.send_transaction(tx)

        except asyncio.CancelledError:
            released = await self.sequencer.release(nonce)
            logger.warning(
                f"[TX-CANCEL] Transfer cancelled (nonce {nonce} "
                f"{'reverted' if released else 'kept'})"
            )
            raise
        except Exception as e:
            released = await self.sequencer.release(nonce)
            logger.error(
                f"[TX-FAIL] Failed to send transaction (nonce {nonce} "
                f"{'reverted' if released else 'kept'}). Reason: {e}"
            )

            if isinstance(e, ConnectivityError):
                await self.recover(connection)
            elif _is_nonce_desync(e):
                await self.sequencer.invalidate()

            if isinstance(e, TransferError):
                raise
            raise SubmissionRejectedError(f"{type(e).__name__}: {e}") from e

        logger.info(
            f"[CORE-TX] Sent. Hash: {tx_hash}. Nonce: {nonce}. "
            f"Value: {wei_to_eth(amount)} ETH. MaxFee: {_gwei(quote.max_fee)} Gwei. "
            f"MaxPriorityFee: {_gwei(quote.priority_fee)} Gwei."
        )
        return connection, tx_hash, amount

    async def _confirm(self, connection: "Connection", tx_hash: str) -> Any:
        try:
            receipt = await connection.wait_for_receipt(
                tx_hash,
                timeout=self.receipt_timeout,
                poll_latency=self.receipt_poll_interval,
            )
        except ConfirmationTimeoutError:
            logger.error(f"[TX-TIMEOUT] No receipt for {tx_hash} within {self.receipt_timeout}s")
            raise
        except ConnectivityError as e:
            await self.recover(connection)
            raise ConfirmationTimeoutError(
                f"Lost connection while awaiting receipt: {e}", tx_hash=tx_hash
            ) from e
        except Exception as e:
            # Already broadcast, so the hash stays on the outcome.
            logger.error(f"[TX-TIMEOUT] Receipt lookup for {tx_hash} failed: {e}")
            raise ConfirmationTimeoutError(
                f"Receipt unavailable: {type(e).__name__}: {e}", tx_hash=tx_hash
            ) from e

        if receipt.get("status") != 1:
            logger.error(
                f"[TX-REVERT] Transaction {tx_hash} was mined but reverted. "
                f"Status: {receipt.get('status')}"
            )
            raise MinedRevertedError(
                "Transaction failed or was reverted after being mined.", tx_hash=tx_hash
            )
        return receipt

    async def recover(self, connection: "Connection") -> None:
        """Fail over after a connectivity error on `connection`."""
        try:
            await self.connections.failover(connection)
        except ConnectivityError as e:
            logger.critical(f"Failover exhausted all endpoints: {e}")
