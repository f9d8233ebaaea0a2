"""Read-only status endpoints."""

from fastapi import APIRouter, Depends

from treasury_relay.service import TreasuryService, get_service

router = APIRouter()


@router.get("/")
async def root(service: TreasuryService = Depends(get_service)) -> dict:
    """Service banner."""
    count = len(service.dispatcher.variants)
    return {"status": "Online", "message": f"Server online. {count} withdrawal methods active."}


@router.get("/status")
async def get_status(service: TreasuryService = Depends(get_service)) -> dict:
    """Treasury address, nonce counter, balance and registered variants."""
    return await service.status()
