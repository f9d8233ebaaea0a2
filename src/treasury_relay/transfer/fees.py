"""EIP-1559 fee computation.

The priority fee never drops below a configured floor unless the caller
overrides it explicitly, and the fee ceiling leaves room for the base fee
to triple between quote and inclusion. The ceiling is a cap: unused
headroom is refunded by the network.
"""

import logging

from treasury_relay.transfer.base import FeeOverrides, FeeQuote, NetworkFeeData

logger = logging.getLogger(__name__)

BASE_FEE_MULTIPLIER = 3


class FeeEstimator:
    """Builds a FeeQuote per transfer from network fee data."""

    def __init__(
        self,
        min_priority_fee: int,
        default_base_fee: int,
        default_gas_limit: int = 21000,
    ):
        """Initialize estimator.

        Args:
            min_priority_fee: Priority fee floor (wei)
            default_base_fee: Base fee assumed when the network reports none (wei)
            default_gas_limit: Gas limit of a plain value transfer
        """
        self.min_priority_fee = min_priority_fee
        self.default_base_fee = default_base_fee
        self.default_gas_limit = default_gas_limit

    def estimate_base_fee(self, fee_data: NetworkFeeData) -> int:
        if fee_data.base_fee is not None:
            return fee_data.base_fee
        if fee_data.gas_price is not None:
            return fee_data.gas_price
        return self.default_base_fee

    def compute(self, overrides: FeeOverrides, fee_data: NetworkFeeData) -> FeeQuote:
        if overrides.priority_fee is not None:
            priority_fee = overrides.priority_fee
        else:
            priority_fee = max(fee_data.max_priority_fee or 0, self.min_priority_fee)

        base_fee = self.estimate_base_fee(fee_data)
        max_fee = max(
            overrides.max_fee or 0,
            fee_data.max_fee or 0,
            priority_fee + BASE_FEE_MULTIPLIER * base_fee,
        )

        gas_limit = overrides.gas_limit or self.default_gas_limit

        quote = FeeQuote(priority_fee=priority_fee, max_fee=max_fee, gas_limit=gas_limit)
        logger.debug(f"Fee quote: {quote} (base fee {base_fee})")
        return quote
