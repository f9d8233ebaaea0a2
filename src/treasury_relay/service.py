"""Service wiring.

Builds the signer, endpoint pool, nonce sequencer, connection manager,
fee estimator, transfer engine and dispatcher from settings, and exposes
the read-only status view.
"""

import logging
from decimal import Decimal
from typing import Optional

from treasury_relay.config import Settings, get_settings
from treasury_relay.rpc.connection import ConnectionFactory, ConnectionManager
from treasury_relay.rpc.endpoints import EndpointPool
from treasury_relay.signing.base import SignerBackend
from treasury_relay.signing.local import LocalSigner
from treasury_relay.strategies.base import WithdrawalCommand, WithdrawalOutcome
from treasury_relay.strategies.dispatcher import Dispatcher, NotificationHook, default_policies
from treasury_relay.strategies.policies import ApprovalFunction
from treasury_relay.transfer.base import ConnectivityError, eth_to_wei, gwei_to_wei, wei_to_eth
from treasury_relay.transfer.engine import TransferEngine
from treasury_relay.transfer.fees import FeeEstimator
from treasury_relay.transfer.nonce import NonceSequencer

logger = logging.getLogger(__name__)


class TreasuryService:
    """Owns every process-wide component of the treasury relay."""

    def __init__(
        self,
        settings: Settings,
        signer: Optional[SignerBackend] = None,
        connection_factory: Optional[ConnectionFactory] = None,
        approve: Optional[ApprovalFunction] = None,
        hooks: Optional[dict[str, NotificationHook]] = None,
    ):
        self.settings = settings
        self.signer = signer or LocalSigner(settings.treasury_private_key)

        self.sequencer = NonceSequencer(lock_timeout=settings.lock_timeout)
        self.connections = ConnectionManager(
            pool=EndpointPool(settings.rpc_url_list, chain_id=settings.chain_id),
            signer=self.signer,
            sequencer=self.sequencer,
            connection_factory=connection_factory,
            request_timeout=settings.request_timeout,
            lock_timeout=settings.lock_timeout,
        )
        self.fees = FeeEstimator(
            min_priority_fee=gwei_to_wei(settings.min_priority_fee_gwei),
            default_base_fee=gwei_to_wei(settings.default_base_fee_gwei),
            default_gas_limit=settings.simple_transfer_gas,
        )
        self.engine = TransferEngine(
            connections=self.connections,
            sequencer=self.sequencer,
            fees=self.fees,
            gas_reserve=eth_to_wei(settings.gas_reserve_eth),
            dust_threshold=eth_to_wei(settings.dust_threshold_eth),
            receipt_timeout=settings.receipt_timeout,
            receipt_poll_interval=settings.receipt_poll_interval,
        )
        self.dispatcher = Dispatcher(
            engine=self.engine,
            connections=self.connections,
            policies=default_policies(settings, approve=approve),
            payout_wallet=settings.payout_wallet,
            hooks=hooks,
        )

    @property
    def treasury_address(self) -> str:
        return self.connections.treasury_address

    async def start(self) -> None:
        """Connect and synchronize the nonce from the network.

        Raises:
            ConnectivityError: If no endpoint can be reached
        """
        await self.connections.acquire()

    async def close(self) -> None:
        await self.connections.close()

    async def withdraw(self, command: WithdrawalCommand) -> WithdrawalOutcome:
        return await self.dispatcher.execute(command)

    async def get_balance(self) -> Optional[int]:
        """Treasury balance in wei on the active connection, None if offline."""
        connection = self.connections.active
        if connection is None:
            return None
        try:
            return await connection.get_balance()
        except ConnectivityError as e:
            logger.warning(f"Balance unavailable: {e}")
            return None

    async def status(self) -> dict:
        """Read-only snapshot of the treasury state."""
        balance = await self.get_balance()
        active = self.connections.active

        balance_view = None
        if balance is not None:
            eth = wei_to_eth(balance)
            balance_view = {
                "eth": f"{eth:.6f}",
                "usd": f"{(eth * Decimal(self.settings.eth_price_usd)):.2f}",
            }

        return {
            "status": "Operational" if active is not None else "Disconnected",
            "treasuryWallet": self.treasury_address,
            "nonceManager": self.sequencer.value,
            "endpoint": active.endpoint.url if active is not None else None,
            "balance": balance_view,
            "variants": self.dispatcher.variants,
            "activeWithdrawalEndpoints": [f"/withdraw/{v}" for v in self.dispatcher.variants],
        }


_service: Optional[TreasuryService] = None


def get_service() -> TreasuryService:
    """Get the process-wide service, creating it on first use."""
    global _service
    if _service is None:
        _service = TreasuryService(get_settings())
    return _service


async def close_service() -> None:
    """Close the process-wide service if it was created."""
    if _service is not None:
        await _service.close()


def reset_service() -> None:
    """Drop the process-wide service (for testing)."""
    global _service
    _service = None
