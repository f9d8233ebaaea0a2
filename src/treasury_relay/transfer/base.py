"""Core types for treasury transfers.

Transfer flow:
1. Caller builds a TransferRequest (amount 0 = send maximum)
2. Engine reserves a nonce and quotes fees
3. Engine resolves the amount against balance, fee ceiling and gas reserve
4. Transaction is signed and broadcast
5. Engine waits for the receipt and returns a TransferOutcome

All amounts and fees are integers in wei. Decimal ether values only appear
in serialized, human-facing output.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from web3 import Web3


class FailureReason(str, Enum):
    """Why a transfer did not complete."""
    CONNECTIVITY = "connectivity"                # No usable RPC endpoint
    RPC_ERROR = "rpc_error"                      # Endpoint answered with an error
    INSUFFICIENT_FUNDS = "insufficient_funds"    # Amount at or below dust after reserves
    SUBMISSION_REJECTED = "submission_rejected"  # Refused before inclusion
    MINED_REVERTED = "mined_reverted"            # Included, execution failed
    TIMEOUT = "timeout"                          # Broadcast, no receipt in time
    BALANCE_DIVERGENCE = "balance_divergence"    # Endpoints disagree on balance
    POST_CHECK_FAILED = "post_check_failed"      # Balance did not drop after transfer
    APPROVAL_REJECTED = "approval_rejected"      # Approval step refused
    UNKNOWN_VARIANT = "unknown_variant"
    INVALID_REQUEST = "invalid_request"


def wei_to_eth(wei: int) -> Decimal:
    """Convert wei to a Decimal ether amount (display only)."""
    return Decimal(Web3.from_wei(wei, "ether"))


def eth_to_wei(amount: Decimal) -> int:
    """Convert a Decimal ether amount to wei."""
    return int(Web3.to_wei(amount, "ether"))


def gwei_to_wei(amount: int) -> int:
    """Convert gwei to wei."""
    return int(Web3.to_wei(amount, "gwei"))


@dataclass(frozen=True)
class NetworkFeeData:
    """Fee data reported by the network for the next block.

    Any field may be None when the endpoint does not report it.
    """
    gas_price: Optional[int] = None
    base_fee: Optional[int] = None
    max_priority_fee: Optional[int] = None
    max_fee: Optional[int] = None


@dataclass(frozen=True)
class FeeOverrides:
    """Caller-supplied fee parameters. None means "let the estimator decide"."""
    priority_fee: Optional[int] = None
    max_fee: Optional[int] = None
    gas_limit: Optional[int] = None


@dataclass(frozen=True)
class FeeQuote:
    """Fee parameters for one pending transaction."""
    priority_fee: int
    max_fee: int
    gas_limit: int

    @property
    def max_cost(self) -> int:
        """Worst-case fee the transaction can be charged."""
        return self.max_fee * self.gas_limit


@dataclass(frozen=True)
class TransferRequest:
    """Request to move value out of the treasury.

    Attributes:
        amount_wei: Amount to send; zero or negative sends the maximum
        destination: Destination address
        overrides: Optional fee overrides
    """
    amount_wei: int
    destination: str
    overrides: FeeOverrides = field(default_factory=FeeOverrides)

    @property
    def is_max_send(self) -> bool:
        return self.amount_wei <= 0


@dataclass
class TransferOutcome:
    """Result of a transfer.

    A failed outcome carries a tx_hash only when the transaction left the
    process (mined but reverted, or broadcast without a receipt in time).
    """
    success: bool
    tx_hash: Optional[str] = None
    amount_wei: Optional[int] = None
    receipt: Optional[Any] = None
    reason: Optional[FailureReason] = None
    error: Optional[str] = None

    @classmethod
    def confirmed(cls, tx_hash: str, amount_wei: int, receipt: Any) -> "TransferOutcome":
        return cls(success=True, tx_hash=tx_hash, amount_wei=amount_wei, receipt=receipt)

    @classmethod
    def from_error(cls, error: "TransferError") -> "TransferOutcome":
        return cls(
            success=False,
            tx_hash=error.tx_hash,
            reason=error.reason,
            error=str(error),
        )

    @property
    def amount_sent(self) -> Optional[Decimal]:
        """Amount sent in ether."""
        if self.amount_wei is None:
            return None
        return wei_to_eth(self.amount_wei)

    def to_dict(self) -> dict:
        """Serialize to the external result shape."""
        data: dict[str, Any] = {"success": self.success}
        if self.tx_hash:
            data["txHash"] = self.tx_hash
        if self.amount_wei is not None:
            data["amountSent"] = str(self.amount_sent)
        if self.error:
            data["error"] = self.error
        if self.reason:
            data["reason"] = self.reason.value
        if self.receipt is not None:
            data["blockNumber"] = self.receipt.get("blockNumber")
            data["gasUsed"] = self.receipt.get("gasUsed")
        return data


@dataclass
class SplitLeg:
    """One destination of a split withdrawal."""
    destination: str
    outcome: TransferOutcome


@dataclass
class SplitOutcome:
    """Aggregate result of a split withdrawal.

    Legs run sequentially and stop at the first failure, so `legs` only
    holds the attempted ones.
    """
    legs: list[SplitLeg] = field(default_factory=list)
    planned: int = 0

    @property
    def success(self) -> bool:
        return len(self.legs) == self.planned and all(leg.outcome.success for leg in self.legs)

    @property
    def total_wei(self) -> int:
        return sum(leg.outcome.amount_wei or 0 for leg in self.legs if leg.outcome.success)

    @property
    def error(self) -> Optional[str]:
        for leg in self.legs:
            if not leg.outcome.success:
                return f"Leg to {leg.destination} failed: {leg.outcome.error}"
        return None

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "success": self.success,
            "message": "Micro-split complete." if self.success else "Micro-split aborted.",
            "totalSent": str(wei_to_eth(self.total_wei)),
            "transactions": [
                {"destination": leg.destination, **leg.outcome.to_dict()} for leg in self.legs
            ],
        }
        if self.error:
            data["error"] = self.error
        return data


class TransferError(Exception):
    """Base class for every recoverable transfer failure."""

    reason: FailureReason = FailureReason.SUBMISSION_REJECTED

    def __init__(self, message: str, tx_hash: Optional[str] = None):
        super().__init__(message)
        self.tx_hash = tx_hash


class ConnectivityError(TransferError):
    """No RPC endpoint could be reached."""
    reason = FailureReason.CONNECTIVITY


class RpcResponseError(TransferError):
    """The endpoint was reachable but answered a call with an error."""
    reason = FailureReason.RPC_ERROR


class InsufficientFundsError(TransferError):
    """Resolved amount is at or below the dust threshold."""
    reason = FailureReason.INSUFFICIENT_FUNDS


class SubmissionRejectedError(TransferError):
    """The network refused the transaction before inclusion."""
    reason = FailureReason.SUBMISSION_REJECTED


class MinedRevertedError(TransferError):
    """The transaction was included but its execution failed."""
    reason = FailureReason.MINED_REVERTED


class ConfirmationTimeoutError(TransferError):
    """No receipt arrived within the configured interval."""
    reason = FailureReason.TIMEOUT


class BalanceDivergenceError(TransferError):
    """Two endpoints report different treasury balances."""
    reason = FailureReason.BALANCE_DIVERGENCE


class PostCheckFailedError(TransferError):
    """Treasury balance did not drop after a confirmed transfer."""
    reason = FailureReason.POST_CHECK_FAILED


class ApprovalRejectedError(TransferError):
    """The approval step refused the withdrawal."""
    reason = FailureReason.APPROVAL_REJECTED


class UnknownVariantError(TransferError):
    """No withdrawal variant is registered under the given identifier."""
    reason = FailureReason.UNKNOWN_VARIANT


class InvalidRequestError(TransferError):
    """The withdrawal request cannot be executed as given."""
    reason = FailureReason.INVALID_REQUEST
