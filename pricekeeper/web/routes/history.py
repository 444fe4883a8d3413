"""Price history routes (newest first)."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from pricekeeper.models import HistoryEntry
from pricekeeper.pricing.service import PricingService
from pricekeeper.web.dependencies import get_pricing_service

router = APIRouter(prefix="/api/price-history", tags=["history"])


@router.get("", response_model=list[HistoryEntry])
async def price_history(
    limit: int | None = Query(default=None, ge=1),
    service: PricingService = Depends(get_pricing_service),
):
    return await service.get_history(limit=limit)


@router.get("/model/{item_id:path}", response_model=list[HistoryEntry])
async def price_history_for_model(
    item_id: str,
    limit: int | None = Query(default=None, ge=1),
    service: PricingService = Depends(get_pricing_service),
):
    return await service.get_history(item_id=item_id, limit=limit)
