"""Withdrawal variant policies."""

import logging
import random
from dataclasses import replace
from typing import TYPE_CHECKING, Callable, Optional

from treasury_relay.strategies.base import WithdrawalCommand, WithdrawalOutcome, WithdrawalPolicy
from treasury_relay.transfer.base import (
    ApprovalRejectedError,
    BalanceDivergenceError,
    InvalidRequestError,
    PostCheckFailedError,
    SplitLeg,
    SplitOutcome,
    TransferError,
    TransferOutcome,
    TransferRequest,
    wei_to_eth,
)

if TYPE_CHECKING:
    from treasury_relay.strategies.dispatcher import Dispatcher

logger = logging.getLogger(__name__)

ApprovalFunction = Callable[[WithdrawalCommand], bool]


def _request(command: WithdrawalCommand) -> TransferRequest:
    return TransferRequest(
        amount_wei=command.amount_wei,
        destination=command.destination,
        overrides=command.overrides,
    )


class DirectPolicy(WithdrawalPolicy):
    """Single transfer with no extra check."""

    def __init__(self, note: Optional[str] = None):
        self.note = note

    async def execute(self, command: WithdrawalCommand, dispatcher: "Dispatcher") -> WithdrawalOutcome:
        if self.note:
            logger.info(f"[{command.variant}] {self.note}")
        return await dispatcher.engine.transfer(_request(command))


class CrossValidatedPolicy(WithdrawalPolicy):
    """Compare the treasury balance on two endpoints before transferring."""

    def __init__(self, tolerance: int):
        self.tolerance = tolerance

    async def execute(self, command: WithdrawalCommand, dispatcher: "Dispatcher") -> WithdrawalOutcome:
        connections = dispatcher.connections
        if len(connections.pool) < 2:
            raise BalanceDivergenceError(
                "Multi-RPC balance check needs at least two RPC endpoints."
            )

        primary = await dispatcher.treasury_balance()

        secondary_connection = await connections.open_secondary()
        try:
            secondary = await secondary_connection.get_balance(connections.treasury_address)
        finally:
            await secondary_connection.close()

        if abs(primary - secondary) > self.tolerance:
            logger.warning(
                f"Balance divergence: {wei_to_eth(primary)} ETH on primary, "
                f"{wei_to_eth(secondary)} ETH on {secondary_connection.endpoint}"
            )
            raise BalanceDivergenceError("Multi-RPC balance check failed (Divergence).")

        return await dispatcher.engine.transfer(_request(command))


class PostVerifiedPolicy(WithdrawalPolicy):
    """Transfer, then require the treasury balance to have dropped."""

    async def execute(self, command: WithdrawalCommand, dispatcher: "Dispatcher") -> WithdrawalOutcome:
        initial = await dispatcher.treasury_balance()
        outcome = await dispatcher.engine.transfer(_request(command))
        if not outcome.success:
            return outcome

        # A confirmed transfer is never reported as failed for want of a reading.
        try:
            final = await dispatcher.treasury_balance()
        except TransferError as e:
            logger.warning(f"Post-TX balance check inconclusive for {outcome.tx_hash}: {e}")
            return outcome

        if final >= initial:
            logger.error(
                f"Balance did not drop after {outcome.tx_hash}: "
                f"{wei_to_eth(initial)} -> {wei_to_eth(final)} ETH"
            )
            raise PostCheckFailedError(
                "Post-TX balance check failed (Balance did not drop).", tx_hash=outcome.tx_hash
            )
        return outcome


class RandomApproval:
    """Simulated approval step rejecting a fixed share of requests."""

    def __init__(self, rejection_probability: float, rng: Optional[random.Random] = None):
        self.rejection_probability = rejection_probability
        self._rng = rng or random.Random()

    def __call__(self, command: WithdrawalCommand) -> bool:
        return self._rng.random() >= self.rejection_probability


class GatedPolicy(WithdrawalPolicy):
    """Require an external approval decision before transferring."""

    def __init__(self, approve: ApprovalFunction):
        self.approve = approve

    async def execute(self, command: WithdrawalCommand, dispatcher: "Dispatcher") -> WithdrawalOutcome:
        if not self.approve(command):
            raise ApprovalRejectedError("2FA Timeout or Invalid Code.")
        return await dispatcher.engine.transfer(_request(command))


class RedirectedPolicy(WithdrawalPolicy):
    """Send to a fixed internal address with a custom gas limit."""

    def __init__(self, destination: str, gas_limit: int):
        self.destination = destination
        self.gas_limit = gas_limit

    async def execute(self, command: WithdrawalCommand, dispatcher: "Dispatcher") -> WithdrawalOutcome:
        request = TransferRequest(
            amount_wei=command.amount_wei,
            destination=self.destination,
            overrides=replace(command.overrides, gas_limit=self.gas_limit),
        )
        return await dispatcher.engine.transfer(request)


class SplitPolicy(WithdrawalPolicy):
    """Divide the amount across several destinations, one transfer each.

    Legs run in order and stop at the first failure.
    """

    def __init__(self, parts: int = 3):
        self.parts = parts

    def destinations(self, command: WithdrawalCommand, payout_wallet: str) -> list[str]:
        dests = [command.destination, command.aux_destination or payout_wallet]
        dests += [payout_wallet] * (self.parts - len(dests))
        return dests[: self.parts]

    async def execute(self, command: WithdrawalCommand, dispatcher: "Dispatcher") -> WithdrawalOutcome:
        if command.amount_wei <= 0:
            raise InvalidRequestError("Split withdrawals need an explicit positive amount.")

        destinations = self.destinations(command, dispatcher.payout_wallet)
        if not all(destinations):
            raise InvalidRequestError("Split withdrawal needs PAYOUT_WALLET or an aux destination.")

        share = command.amount_wei // self.parts
        result = SplitOutcome(planned=self.parts)

        for index, destination in enumerate(destinations, start=1):
            outcome: TransferOutcome = await dispatcher.engine.transfer(
                TransferRequest(
                    amount_wei=share,
                    destination=destination,
                    overrides=command.overrides,
                )
            )
            result.legs.append(SplitLeg(destination=destination, outcome=outcome))
            if not outcome.success:
                logger.warning(f"Split leg {index}/{self.parts} failed, skipping the rest")
                break

        return result


class FeeTunedPolicy(WithdrawalPolicy):
    """Override only the priority fee; the estimator handles the rest."""

    def __init__(self, priority_fee: int):
        self.priority_fee = priority_fee

    async def execute(self, command: WithdrawalCommand, dispatcher: "Dispatcher") -> WithdrawalOutcome:
        request = TransferRequest(
            amount_wei=command.amount_wei,
            destination=command.destination,
            overrides=replace(command.overrides, priority_fee=self.priority_fee),
        )
        return await dispatcher.engine.transfer(request)


class NotifyingPolicy(DirectPolicy):
    """Direct transfer followed by a named notification hook on success."""

    def __init__(self, hook: str):
        super().__init__()
        self.hook = hook

    async def execute(self, command: WithdrawalCommand, dispatcher: "Dispatcher") -> WithdrawalOutcome:
        outcome = await super().execute(command, dispatcher)
        if outcome.success:
            await dispatcher.notify(self.hook, command, outcome)
        return outcome
