"""Tests for EIP-1559 fee computation."""

import pytest

from treasury_relay.transfer.base import FeeOverrides, NetworkFeeData
from treasury_relay.transfer.fees import FeeEstimator

GWEI = 10**9


@pytest.fixture
def estimator() -> FeeEstimator:
    return FeeEstimator(min_priority_fee=5 * GWEI, default_base_fee=20 * GWEI)


class TestPriorityFee:
    """Tests for the priority fee component."""

    def test_network_suggestion_above_floor(self, estimator):
        """Test that a generous network suggestion is used as is."""
        data = NetworkFeeData(base_fee=10 * GWEI, max_priority_fee=8 * GWEI)
        quote = estimator.compute(FeeOverrides(), data)

        assert quote.priority_fee == 8 * GWEI

    def test_floor_applies_when_network_underprices(self, estimator):
        """Test that the configured minimum wins over a low suggestion."""
        data = NetworkFeeData(base_fee=10 * GWEI, max_priority_fee=1 * GWEI)
        quote = estimator.compute(FeeOverrides(), data)

        assert quote.priority_fee == 5 * GWEI

    def test_floor_applies_without_suggestion(self, estimator):
        """Test that a missing suggestion falls back to the minimum."""
        quote = estimator.compute(FeeOverrides(), NetworkFeeData(base_fee=10 * GWEI))

        assert quote.priority_fee == 5 * GWEI

    def test_zero_override_is_honored(self, estimator):
        """Test that an explicit zero priority fee is not replaced by the floor."""
        data = NetworkFeeData(base_fee=10 * GWEI, max_priority_fee=3 * GWEI)
        quote = estimator.compute(FeeOverrides(priority_fee=0), data)

        assert quote.priority_fee == 0
        assert quote.max_fee >= 3 * 10 * GWEI

    def test_high_override(self, estimator):
        """Test that a high override is used verbatim."""
        data = NetworkFeeData(base_fee=10 * GWEI, max_priority_fee=3 * GWEI)
        quote = estimator.compute(FeeOverrides(priority_fee=100 * GWEI), data)

        assert quote.priority_fee == 100 * GWEI
        assert quote.max_fee == 130 * GWEI


class TestFeeCeiling:
    """Tests for the max fee component."""

    @pytest.mark.parametrize("base_fee", [0, 1, 7 * GWEI, 250 * GWEI])
    def test_ceiling_covers_triple_base_fee(self, estimator, base_fee):
        """Test that the ceiling is at least priority + 3 x base fee."""
        data = NetworkFeeData(base_fee=base_fee, max_priority_fee=2 * GWEI, max_fee=base_fee)
        quote = estimator.compute(FeeOverrides(), data)

        assert quote.max_fee >= quote.priority_fee + 3 * base_fee

    def test_zero_base_fee(self, estimator):
        """Test that a zero base fee is used instead of the fallbacks."""
        data = NetworkFeeData(gas_price=50 * GWEI, base_fee=0)
        quote = estimator.compute(FeeOverrides(), data)

        assert quote.max_fee == 5 * GWEI

    def test_network_max_fee_wins_when_higher(self, estimator):
        """Test that a higher network max fee suggestion is kept."""
        data = NetworkFeeData(base_fee=10 * GWEI, max_priority_fee=5 * GWEI, max_fee=90 * GWEI)
        quote = estimator.compute(FeeOverrides(), data)

        assert quote.max_fee == 90 * GWEI

    def test_override_max_fee_wins_when_higher(self, estimator):
        """Test that a higher max fee override is kept."""
        data = NetworkFeeData(base_fee=10 * GWEI, max_priority_fee=5 * GWEI)
        quote = estimator.compute(FeeOverrides(max_fee=500 * GWEI), data)

        assert quote.max_fee == 500 * GWEI

    def test_low_override_max_fee_cannot_underprice(self, estimator):
        """Test that a low max fee override does not drop below the computed minimum."""
        data = NetworkFeeData(base_fee=10 * GWEI, max_priority_fee=5 * GWEI)
        quote = estimator.compute(FeeOverrides(max_fee=1 * GWEI), data)

        assert quote.max_fee == 35 * GWEI

    def test_gas_price_fallback(self, estimator):
        """Test that gas price stands in for a missing base fee."""
        quote = estimator.compute(FeeOverrides(), NetworkFeeData(gas_price=10 * GWEI))

        assert quote.max_fee == 35 * GWEI

    def test_default_base_fee_fallback(self, estimator):
        """Test that the configured base fee is used when the network reports nothing."""
        quote = estimator.compute(FeeOverrides(), NetworkFeeData())

        assert quote.max_fee == 65 * GWEI


class TestGasLimit:
    """Tests for the gas limit component."""

    def test_default_gas_limit(self, estimator):
        quote = estimator.compute(FeeOverrides(), NetworkFeeData(base_fee=GWEI))

        assert quote.gas_limit == 21000
        assert quote.max_cost == quote.max_fee * 21000

    def test_gas_limit_override(self, estimator):
        quote = estimator.compute(FeeOverrides(gas_limit=75000), NetworkFeeData(base_fee=GWEI))

        assert quote.gas_limit == 75000
