"""Catalog routes.

Routes:
- GET  /api/model-prices        - Current catalog (seeded on first call)
- POST /api/refresh-prices      - Pull reference prices and upsert
- POST /api/update-prices       - Manually set actual prices
- GET  /api/public/llm-pricing  - Public feed in OpenRouter format
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from pricekeeper.models import ChangeSource, PricedItem, RefreshResult
from pricekeeper.pricing.service import PricingService
from pricekeeper.web.dependencies import get_pricing_service
from pricekeeper.web.models import UpdatePricesRequest

router = APIRouter(prefix="/api", tags=["prices"])


@router.get("/model-prices", response_model=list[PricedItem])
async def model_prices(service: PricingService = Depends(get_pricing_service)):
    return await service.get_catalog()


@router.post("/refresh-prices", response_model=RefreshResult)
async def refresh_prices(service: PricingService = Depends(get_pricing_service)):
    """Refresh reference prices; actual prices of known items are preserved."""
    return await service.refresh_catalog()


@router.post("/update-prices", response_model=list[PricedItem])
async def update_prices(
    body: UpdatePricesRequest,
    service: PricingService = Depends(get_pricing_service),
):
    return await service.set_actual_prices(body.actual_prices, ChangeSource.MANUAL)


@router.get("/public/llm-pricing")
async def public_pricing(service: PricingService = Depends(get_pricing_service)):
    return await service.public_pricing_feed()
