"""Transaction submission core: nonce sequencing, fees and transfer types.

The engine itself lives in treasury_relay.transfer.engine.
"""

from treasury_relay.transfer.base import (
    FailureReason,
    FeeOverrides,
    FeeQuote,
    NetworkFeeData,
    TransferError,
    TransferOutcome,
    TransferRequest,
)
from treasury_relay.transfer.fees import FeeEstimator
from treasury_relay.transfer.nonce import NonceSequencer

__all__ = [
    "FailureReason",
    "FeeEstimator",
    "FeeOverrides",
    "FeeQuote",
    "NetworkFeeData",
    "NonceSequencer",
    "TransferError",
    "TransferOutcome",
    "TransferRequest",
]
