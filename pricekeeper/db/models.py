"""SQLAlchemy async database models for pricekeeper.

Four durable collections: priced items, the markup settings singleton,
scheduled price changes and the append-only price history ledger.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from pricekeeper.models import utcnow

# Per-million-token prices with four fractional digits
PRICE_NUMERIC = Numeric(10, 4)
MARKUP_NUMERIC = Numeric(7, 2)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class PricedItemModel(Base):
    """Catalog item keyed by its external model identifier."""

    __tablename__ = "priced_items"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    provider: Mapped[str] = mapped_column(Text, nullable=False, index=True)

    reference_price: Mapped[Decimal] = mapped_column(PRICE_NUMERIC, nullable=False)
    suggested_price: Mapped[Decimal] = mapped_column(PRICE_NUMERIC, nullable=False)
    actual_price: Mapped[Decimal] = mapped_column(PRICE_NUMERIC, nullable=False)

    last_updated: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow
    )

    __table_args__ = (
        CheckConstraint("reference_price >= 0", name="check_reference_price_non_negative"),
        CheckConstraint("suggested_price >= 0", name="check_suggested_price_non_negative"),
        CheckConstraint("actual_price >= 0", name="check_actual_price_non_negative"),
    )


class MarkupSettingsModel(Base):
    """Singleton markup configuration, updated in place."""

    __tablename__ = "markup_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    percentage_markup: Mapped[Decimal] = mapped_column(MARKUP_NUMERIC, nullable=False)
    flat_fee_markup: Mapped[Decimal] = mapped_column(MARKUP_NUMERIC, nullable=False)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow
    )

    __table_args__ = (
        CheckConstraint("percentage_markup >= 0", name="check_percentage_markup_non_negative"),
        CheckConstraint("flat_fee_markup >= 0", name="check_flat_fee_markup_non_negative"),
    )


class ScheduledChangeModel(Base):
    """Future-dated actual-price change.

    Applied rows are kept as a record of intent; cancelled rows are deleted.
    """

    __tablename__ = "scheduled_changes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    item_id: Mapped[str] = mapped_column(
        Text, ForeignKey("priced_items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    scheduled_price: Mapped[Decimal] = mapped_column(PRICE_NUMERIC, nullable=False)
    effective_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    applied: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    applied_at: Mapped[datetime | None] = mapped_column(DateTime)

    __table_args__ = (
        CheckConstraint("scheduled_price >= 0", name="check_scheduled_price_non_negative"),
        # Sweeper scan: unapplied rows ordered by effective time
        Index("idx_scheduled_due", "applied", "effective_at"),
    )


class PriceHistoryModel(Base):
    """Append-only ledger of actual-price transitions."""

    __tablename__ = "price_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    item_id: Mapped[str] = mapped_column(
        Text, ForeignKey("priced_items.id"), nullable=False
    )
    previous_price: Mapped[Decimal] = mapped_column(PRICE_NUMERIC, nullable=False)
    new_price: Mapped[Decimal] = mapped_column(PRICE_NUMERIC, nullable=False)
    changed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    change_source: Mapped[str] = mapped_column(String(32), nullable=False)

    __table_args__ = (
        CheckConstraint(
            "change_source IN ('manual', 'scheduled', 'catalog_refresh_initial')",
            name="check_change_source",
        ),
        Index("idx_history_item_changed", "item_id", "changed_at"),
    )
