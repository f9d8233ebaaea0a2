"""Base interfaces for withdrawal variants.

A variant is a named policy wrapped around one or more transfer engine
calls (pre-checks, redirection, splitting, fee tuning). Every variant
returns a TransferOutcome, or a SplitOutcome for multi-leg payouts.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Optional, Union

from treasury_relay.transfer.base import FeeOverrides, SplitOutcome, TransferOutcome

if TYPE_CHECKING:
    from treasury_relay.strategies.dispatcher import Dispatcher

WithdrawalOutcome = Union[TransferOutcome, SplitOutcome]


class Variant(str, Enum):
    """Registered withdrawal variants."""
    STANDARD_EOA = "standard-eoa"
    CHECK_BEFORE = "check-before"
    CHECK_AFTER = "check-after"
    TWO_FACTOR_AUTH = "two-factor-auth"
    CONTRACT_CALL = "contract-call"
    TIMED_RELEASE = "timed-release"
    MICRO_SPLIT_3 = "micro-split-3"
    CONSOLIDATE_MULTI = "consolidate-multi"
    MAX_PRIORITY = "max-priority"
    LOW_BASE_ONLY = "low-base-only"
    LEDGER_SYNC = "ledger-sync"
    TELEGRAM_NOTIFY = "telegram-notify"


@dataclass(frozen=True)
class WithdrawalCommand:
    """A caller's withdrawal request.

    Attributes:
        variant: Variant identifier as received from the caller
        amount_wei: Requested amount; zero sends the maximum
        destination: Main destination address
        aux_destination: Secondary destination (split variants)
        overrides: Optional fee overrides
    """
    variant: str
    amount_wei: int
    destination: str
    aux_destination: Optional[str] = None
    overrides: FeeOverrides = field(default_factory=FeeOverrides)


class WithdrawalPolicy(ABC):
    """Abstract base class for variant policies."""

    @abstractmethod
    async def execute(
        self, command: WithdrawalCommand, dispatcher: "Dispatcher"
    ) -> WithdrawalOutcome:
        """Run the variant.

        Args:
            command: The withdrawal request
            dispatcher: Gives access to the engine, connections and hooks

        Returns:
            Outcome of the withdrawal

        Raises:
            TransferError: For variant-level check failures
        """
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"
