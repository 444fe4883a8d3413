"""Scheduled price change routes.

Routes:
- POST   /api/scheduled-prices                  - Create a future change
- GET    /api/scheduled-prices                  - Pending changes
- GET    /api/scheduled-prices/model/{item_id}  - Pending changes for one item
- POST   /api/scheduled-prices/apply-due        - Run a sweep now
- POST   /api/scheduled-prices/{change_id}/apply - Apply one change now
- DELETE /api/scheduled-prices/{change_id}      - Cancel a pending change
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from pricekeeper.models import ScheduledChangeView
from pricekeeper.pricing.service import PricingService
from pricekeeper.pricing.sweeper import DueChangeSweeper
from pricekeeper.web.dependencies import get_pricing_service, get_sweeper
from pricekeeper.web.models import (
    ApplyDueResponse,
    CreateScheduledChangeRequest,
    MessageResponse,
    ScheduledChangeApplied,
    ScheduledChangeCreated,
)

router = APIRouter(prefix="/api/scheduled-prices", tags=["scheduled-prices"])


@router.post("", response_model=ScheduledChangeCreated, status_code=status.HTTP_201_CREATED)
async def create_scheduled_price(
    body: CreateScheduledChangeRequest,
    service: PricingService = Depends(get_pricing_service),
):
    change = await service.create_scheduled_change(
        body.item_id, body.scheduled_price, body.effective_at
    )
    return ScheduledChangeCreated(
        scheduled_price=change,
        message="Scheduled price change created successfully",
    )


@router.get("", response_model=list[ScheduledChangeView])
async def list_scheduled_prices(service: PricingService = Depends(get_pricing_service)):
    return await service.list_scheduled_changes()


@router.get("/model/{item_id:path}", response_model=list[ScheduledChangeView])
async def list_scheduled_prices_for_model(
    item_id: str,
    service: PricingService = Depends(get_pricing_service),
):
    return await service.list_scheduled_changes(item_id=item_id)


@router.post("/apply-due", response_model=ApplyDueResponse)
async def apply_due(sweeper: DueChangeSweeper = Depends(get_sweeper)):
    result = await sweeper.run_once()
    if result.applied:
        message = f"Successfully applied {result.applied} scheduled price changes"
    else:
        message = "No scheduled price changes were due for application"
    return ApplyDueResponse(
        applied_count=result.applied,
        failed_count=result.failed,
        message=message,
    )


@router.post("/{change_id}/apply", response_model=ScheduledChangeApplied)
async def apply_scheduled_price(
    change_id: int,
    service: PricingService = Depends(get_pricing_service),
):
    item = await service.apply_scheduled_change(change_id)
    return ScheduledChangeApplied(model=item, message="Scheduled price applied successfully")


@router.delete("/{change_id}", response_model=MessageResponse)
async def cancel_scheduled_price(
    change_id: int,
    service: PricingService = Depends(get_pricing_service),
):
    await service.cancel_scheduled_change(change_id)
    return MessageResponse(message="Scheduled price change cancelled")
