"""Named withdrawal variants built on the transfer engine."""

from treasury_relay.strategies.base import (
    Variant,
    WithdrawalCommand,
    WithdrawalOutcome,
    WithdrawalPolicy,
)
from treasury_relay.strategies.dispatcher import Dispatcher, default_policies

__all__ = [
    "Dispatcher",
    "Variant",
    "WithdrawalCommand",
    "WithdrawalOutcome",
    "WithdrawalPolicy",
    "default_policies",
]
