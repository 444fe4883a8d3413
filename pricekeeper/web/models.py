"""Request/response models for the pricekeeper web API."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from pricekeeper.models import MarkupSettings, PricedItem, ScheduledChange


class UpdatePricesRequest(BaseModel):
    """Used by: POST /api/update-prices"""

    actual_prices: dict[str, Decimal] = Field(alias="actualPrices")

    model_config = {"populate_by_name": True}


class PriceSettingsRequest(BaseModel):
    """Used by: POST /api/price-settings (partial update)"""

    percentage_markup: Decimal | None = Field(default=None, alias="percentageMarkup")
    flat_fee_markup: Decimal | None = Field(default=None, alias="flatFeeMarkup")

    model_config = {"populate_by_name": True}


class PriceSettingsResponse(BaseModel):
    settings: MarkupSettings
    message: str


class CreateScheduledChangeRequest(BaseModel):
    """Used by: POST /api/scheduled-prices"""

    item_id: str = Field(alias="modelId", min_length=1)
    scheduled_price: Decimal = Field(alias="scheduledPrice")
    effective_at: datetime = Field(alias="effectiveDate")

    model_config = {"populate_by_name": True}


class ScheduledChangeCreated(BaseModel):
    scheduled_price: ScheduledChange = Field(serialization_alias="scheduledPrice")
    message: str


class ScheduledChangeApplied(BaseModel):
    model: PricedItem
    message: str


class ApplyDueResponse(BaseModel):
    applied_count: int = Field(serialization_alias="appliedCount")
    failed_count: int = Field(serialization_alias="failedCount")
    message: str


class MessageResponse(BaseModel):
    message: str
