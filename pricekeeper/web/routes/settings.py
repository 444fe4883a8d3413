"""Markup settings routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from pricekeeper.models import MarkupSettings
from pricekeeper.pricing.service import PricingService
from pricekeeper.web.dependencies import get_pricing_service
from pricekeeper.web.models import PriceSettingsRequest, PriceSettingsResponse

router = APIRouter(prefix="/api", tags=["settings"])


@router.get("/price-settings", response_model=MarkupSettings)
async def get_price_settings(service: PricingService = Depends(get_pricing_service)):
    return await service.get_settings()


@router.post("/price-settings", response_model=PriceSettingsResponse)
async def update_price_settings(
    body: PriceSettingsRequest,
    service: PricingService = Depends(get_pricing_service),
):
    """Partial update; every suggested price is recomputed before returning."""
    settings = await service.update_settings(
        percentage_markup=body.percentage_markup,
        flat_fee_markup=body.flat_fee_markup,
    )
    return PriceSettingsResponse(settings=settings, message="Price settings updated successfully")
