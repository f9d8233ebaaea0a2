"""Maps variant identifiers to policies and runs them.

Every local recoverable failure (divergence, approval, insufficient funds,
unknown variant) comes back as a structured failed outcome; nothing
recoverable is raised past the dispatcher.
"""

import logging
from typing import TYPE_CHECKING, Awaitable, Callable, Optional

from treasury_relay.config import Settings
from treasury_relay.strategies.base import (
    Variant,
    WithdrawalCommand,
    WithdrawalOutcome,
    WithdrawalPolicy,
)
from treasury_relay.strategies.policies import (
    ApprovalFunction,
    CrossValidatedPolicy,
    DirectPolicy,
    FeeTunedPolicy,
    GatedPolicy,
    NotifyingPolicy,
    PostVerifiedPolicy,
    RandomApproval,
    RedirectedPolicy,
    SplitPolicy,
)
from treasury_relay.transfer.base import (
    ConnectivityError,
    SubmissionRejectedError,
    TransferError,
    TransferOutcome,
    UnknownVariantError,
    eth_to_wei,
    gwei_to_wei,
)
from treasury_relay.utils.locks import LockTimeoutError

if TYPE_CHECKING:
    from treasury_relay.rpc.connection import ConnectionManager
    from treasury_relay.transfer.engine import TransferEngine

logger = logging.getLogger(__name__)

NotificationHook = Callable[[WithdrawalCommand, WithdrawalOutcome], Awaitable[None]]


async def log_ledger_entry(command: WithdrawalCommand, outcome: WithdrawalOutcome) -> None:
    """Default ledger hook."""
    logger.info(f"[LEDGER] Withdrawal {command.variant} settled with TX {outcome.tx_hash}")


async def log_notification(command: WithdrawalCommand, outcome: WithdrawalOutcome) -> None:
    """Default notification hook."""
    logger.info(f"[NOTIFY] Withdrawal success: {outcome.amount_sent} ETH in {outcome.tx_hash}")


DEFAULT_HOOKS: dict[str, NotificationHook] = {
    "ledger": log_ledger_entry,
    "notify": log_notification,
}


def default_policies(
    settings: Settings, approve: Optional[ApprovalFunction] = None
) -> dict[Variant, WithdrawalPolicy]:
    """Build the policy of every registered variant from settings."""
    approve = approve or RandomApproval(settings.approval_rejection_probability)

    return {
        Variant.STANDARD_EOA: DirectPolicy(),
        Variant.CHECK_BEFORE: CrossValidatedPolicy(
            tolerance=eth_to_wei(settings.divergence_tolerance_eth)
        ),
        Variant.CHECK_AFTER: PostVerifiedPolicy(),
        Variant.TWO_FACTOR_AUTH: GatedPolicy(approve),
        Variant.CONTRACT_CALL: RedirectedPolicy(
            destination=settings.internal_contract_address,
            gas_limit=settings.contract_call_gas_limit,
        ),
        Variant.TIMED_RELEASE: RedirectedPolicy(
            destination=settings.internal_contract_address,
            gas_limit=settings.timed_release_gas_limit,
        ),
        Variant.MICRO_SPLIT_3: SplitPolicy(parts=3),
        Variant.CONSOLIDATE_MULTI: DirectPolicy(
            note="Consolidating internal contract balances into treasury before payout."
        ),
        Variant.MAX_PRIORITY: FeeTunedPolicy(gwei_to_wei(settings.high_priority_fee_gwei)),
        Variant.LOW_BASE_ONLY: FeeTunedPolicy(0),
        Variant.LEDGER_SYNC: NotifyingPolicy("ledger"),
        Variant.TELEGRAM_NOTIFY: NotifyingPolicy("notify"),
    }


class Dispatcher:
    """Resolves variant identifiers and executes their policies."""

    def __init__(
        self,
        engine: "TransferEngine",
        connections: "ConnectionManager",
        policies: dict[Variant, WithdrawalPolicy],
        payout_wallet: str = "",
        hooks: Optional[dict[str, NotificationHook]] = None,
    ):
        self.engine = engine
        self.connections = connections
        self.payout_wallet = payout_wallet
        self._policies = dict(policies)
        self._hooks = dict(DEFAULT_HOOKS if hooks is None else hooks)

    @property
    def variants(self) -> list[str]:
        """Registered variant identifiers, in declaration order."""
        return [variant.value for variant in Variant if variant in self._policies]

    def resolve(self, identifier: str) -> WithdrawalPolicy:
        """Look up the policy for a variant identifier.

        Raises:
            UnknownVariantError: If the identifier is not registered
        """
        try:
            variant = Variant(identifier)
        except ValueError:
            raise UnknownVariantError(f"Invalid withdrawal strategy ID: {identifier}")

        policy = self._policies.get(variant)
        if policy is None:
            raise UnknownVariantError(f"Withdrawal strategy {identifier} is not enabled")
        return policy

    async def treasury_balance(self) -> int:
        """Treasury balance on the active connection.

        An unreachable endpoint triggers the same failover as a failed transfer
        before the error is re-raised.
        """
        connection = await self.connections.acquire()
        try:
            return await connection.get_balance()
        except ConnectivityError:
            await self.engine.recover(connection)
            raise

    async def execute(self, command: WithdrawalCommand) -> WithdrawalOutcome:
        """Run a withdrawal and return its structured outcome."""
        try:
            policy = self.resolve(command.variant)
            return await policy.execute(command, self)
        except TransferError as e:
            logger.warning(f"[{command.variant}] {e.reason.value}: {e}")
            return TransferOutcome.from_error(e)
        except LockTimeoutError as e:
            logger.error(f"[{command.variant}] {e}")
            return TransferOutcome.from_error(SubmissionRejectedError(str(e)))

    async def notify(
        self, hook_name: str, command: WithdrawalCommand, outcome: WithdrawalOutcome
    ) -> None:
        """Call a notification hook; failures are logged and ignored."""
        hook = self._hooks.get(hook_name)
        if hook is None:
            logger.debug(f"No hook registered for {hook_name}")
            return
        try:
            await hook(command, outcome)
        except Exception as e:
            logger.error(f"Notification hook {hook_name} failed: {e}")
