"""Withdrawal API endpoints."""

import logging
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from web3 import Web3

from treasury_relay.config import get_settings
from treasury_relay.service import TreasuryService, get_service
from treasury_relay.strategies.base import WithdrawalCommand
from treasury_relay.transfer.base import FeeOverrides, UnknownVariantError, eth_to_wei

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/withdraw")


async def require_admin_token(x_admin_token: str = Header(None)) -> bool:
    """Verify admin token."""
    settings = get_settings()
    if settings.admin_token and x_admin_token != settings.admin_token:
        raise HTTPException(status_code=401, detail="Invalid admin token")
    return True


# Request models
class FeeOverridesBody(BaseModel):
    """Optional fee overrides, in gwei."""
    model_config = ConfigDict(populate_by_name=True)

    priority_fee_gwei: Optional[Decimal] = Field(default=None, alias="priorityFeeGwei", ge=0)
    max_fee_gwei: Optional[Decimal] = Field(default=None, alias="maxFeeGwei", ge=0)
    gas_limit: Optional[int] = Field(default=None, alias="gasLimit", gt=0)

    def to_overrides(self) -> FeeOverrides:
        return FeeOverrides(
            priority_fee=_gwei_to_wei(self.priority_fee_gwei),
            max_fee=_gwei_to_wei(self.max_fee_gwei),
            gas_limit=self.gas_limit,
        )


class WithdrawalBody(BaseModel):
    """Withdrawal request."""
    model_config = ConfigDict(populate_by_name=True)

    amount: Optional[Union[str, int, float]] = Field(
        default=None, validation_alias=AliasChoices("amount", "amountETH")
    )  # Decimal ether as string; empty or 0 sends the maximum
    destination: Optional[str] = None
    aux_destination: Optional[str] = Field(default=None, alias="auxDestination")
    fee_overrides: Optional[FeeOverridesBody] = Field(default=None, alias="feeOverrides")


def _gwei_to_wei(value: Optional[Decimal]) -> Optional[int]:
    if value is None:
        return None
    return int(Web3.to_wei(value, "gwei"))


def _parse_amount(raw: Optional[Union[str, int, float]]) -> int:
    """Parse an ether amount into wei; 0 means send the maximum."""
    if raw is None or str(raw).strip() == "":
        return 0
    try:
        amount = Decimal(str(raw))
    except InvalidOperation:
        raise HTTPException(status_code=400, detail="Invalid amount")
    if not amount.is_finite():
        raise HTTPException(status_code=400, detail="Invalid amount")
    if amount < 0:
        raise HTTPException(status_code=400, detail="Withdrawal amount cannot be negative.")

    try:
        amount_wei = eth_to_wei(amount)
    except ValueError:
        raise HTTPException(status_code=400, detail="Withdrawal amount is out of range.")
    # Truncating to zero would turn the request into a max-send.
    if amount > 0 and amount_wei == 0:
        raise HTTPException(status_code=400, detail="Withdrawal amount is below 1 wei.")
    return amount_wei


@router.post("/{variant_id}")
async def withdraw(
    variant_id: str,
    body: WithdrawalBody,
    service: TreasuryService = Depends(get_service),
    _: bool = Depends(require_admin_token),
):
    """Execute a named withdrawal variant."""
    try:
        service.dispatcher.resolve(variant_id)
    except UnknownVariantError as e:
        raise HTTPException(status_code=404, detail=str(e))

    amount_wei = _parse_amount(body.amount)

    destination = body.destination or service.settings.payout_wallet
    if not destination or not Web3.is_address(destination):
        raise HTTPException(
            status_code=400, detail="Invalid or missing main destination wallet address."
        )
    if body.aux_destination and not Web3.is_address(body.aux_destination):
        raise HTTPException(status_code=400, detail="Invalid auxiliary destination address.")

    command = WithdrawalCommand(
        variant=variant_id,
        amount_wei=amount_wei,
        destination=destination,
        aux_destination=body.aux_destination,
        overrides=body.fee_overrides.to_overrides() if body.fee_overrides else FeeOverrides(),
    )

    outcome = await service.withdraw(command)
    data = outcome.to_dict()

    if outcome.success:
        return {"success": True, "message": f"{variant_id} successful.", "data": data}

    logger.warning(f"Withdrawal {variant_id} failed: {data.get('error')}")
    return JSONResponse(
        status_code=500,
        content={"success": False, "message": f"{variant_id} failed.", "data": data},
    )
