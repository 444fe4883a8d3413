"""pricekeeper Pydantic models for type-safe data validation.

Domain values returned by the pricing core. Prices are Decimals with four
fractional digits; timestamps are naive UTC.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utcnow() -> datetime:
    """Current time as a naive UTC datetime (the storage convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: datetime) -> datetime:
    """Normalise an aware datetime to naive UTC; naive values are assumed UTC."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class ChangeSource(str, Enum):
    """Cause of an actual-price transition."""

    MANUAL = "manual"
    SCHEDULED = "scheduled"
    CATALOG_REFRESH_INITIAL = "catalog_refresh_initial"


class ReferencePrice(BaseModel):
    """One record from the external reference-price feed."""

    id: str
    name: str
    provider: str
    reference_price: Decimal = Field(ge=0)

    @field_validator("id")
    @classmethod
    def id_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("id must not be blank")
        return v


class PricedItem(BaseModel):
    """Current price state of one catalog item."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    provider: str
    reference_price: Decimal
    suggested_price: Decimal
    actual_price: Decimal
    last_updated: datetime


class MarkupSettings(BaseModel):
    """The single live markup configuration."""

    model_config = ConfigDict(from_attributes=True)

    percentage_markup: Decimal = Field(ge=0)
    flat_fee_markup: Decimal = Field(ge=0)
    last_updated: datetime | None = None


class ScheduledChange(BaseModel):
    """A future-dated actual-price change."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    item_id: str
    scheduled_price: Decimal
    effective_at: datetime
    created_at: datetime
    applied: bool = False
    applied_at: datetime | None = None


class ScheduledChangeView(ScheduledChange):
    """Pending change joined with the item's current state at read time."""

    item_name: str
    provider: str
    current_price: Decimal


class HistoryEntry(BaseModel):
    """One immutable actual-price transition."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    item_id: str
    previous_price: Decimal
    new_price: Decimal
    changed_at: datetime
    change_source: ChangeSource


class RefreshResult(BaseModel):
    """Outcome of one catalog refresh."""

    fetched: int = 0
    created: int = 0
    updated: int = 0


class SweepResult(BaseModel):
    """Outcome of one due-change sweep."""

    due: int = 0
    applied: int = 0
    failed: int = 0
    applied_ids: list[int] = Field(default_factory=list)
    failed_ids: list[int] = Field(default_factory=list)
