"""Price catalog: sole writer of suggested and actual prices.

Every actual-price transition is written in the caller's transaction together
with its history row (history flushed first for existing items), so no reader
can observe a price without the audit row that explains it.
"""

from __future__ import annotations

from decimal import Decimal

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pricekeeper.db.models import PricedItemModel
from pricekeeper.errors import InvalidArgument, NotFound
from pricekeeper.models import (
    ChangeSource,
    MarkupSettings,
    PricedItem,
    ReferencePrice,
    utcnow,
)
from pricekeeper.pricing.history import HistoryLedger
from pricekeeper.pricing.markup import calculate_suggested_price, quantize_price, to_decimal

logger = structlog.get_logger(__name__)


class PriceCatalog:
    """Current price state of every item."""

    def __init__(self, session: AsyncSession, ledger: HistoryLedger | None = None):
        """Initialize catalog with database session.

        Args:
            session: Active async SQLAlchemy session
            ledger: History ledger sharing the same session
        """
        self.session = session
        self.ledger = ledger or HistoryLedger(session)

    async def _load(self, item_id: str, for_update: bool = False) -> PricedItemModel | None:
        stmt = select(PricedItemModel).where(PricedItemModel.id == item_id)
        if for_update:
            # Row lock on PostgreSQL; SQLite serialises writers itself
            stmt = stmt.with_for_update()
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def get(self, item_id: str) -> PricedItem | None:
        row = await self._load(item_id)
        return PricedItem.model_validate(row) if row else None

    async def require(self, item_id: str) -> PricedItem:
        """Like get(), but raises NotFound for an unknown id."""
        item = await self.get(item_id)
        if item is None:
            raise NotFound(f"Item {item_id} not found", details={"item_id": item_id})
        return item

    async def list_items(self) -> list[PricedItem]:
        stmt = select(PricedItemModel).order_by(PricedItemModel.provider, PricedItemModel.id)
        result = await self.session.execute(stmt)
        return [PricedItem.model_validate(row) for row in result.scalars()]

    async def count(self) -> int:
        return (await self.session.execute(select(func.count()).select_from(PricedItemModel))).scalar_one()

    async def upsert_from_reference(
        self,
        reference: ReferencePrice,
        settings: MarkupSettings,
    ) -> tuple[PricedItem, bool]:
        """Insert or refresh an item from the reference feed.

        Existing items keep their actual price. New items start with
        actual = suggested and get an initial history entry from 0.

        Returns:
            (item, created)
        """
        now = utcnow()
        reference_price = quantize_price(to_decimal(reference.reference_price, "reference_price"))
        suggested = calculate_suggested_price(reference_price, settings)

        row = await self._load(reference.id, for_update=True)
        if row is not None:
            row.name = reference.name
            row.provider = reference.provider
            row.reference_price = reference_price
            row.suggested_price = suggested
            row.last_updated = now
            await self.session.flush()
            return PricedItem.model_validate(row), False

        # The history row references the item, so the item is inserted first;
        # both become visible together when the transaction commits.
        row = PricedItemModel(
            id=reference.id,
            name=reference.name,
            provider=reference.provider,
            reference_price=reference_price,
            suggested_price=suggested,
            actual_price=suggested,
            last_updated=now,
        )
        self.session.add(row)
        await self.session.flush()
        await self.ledger.append(
            reference.id,
            previous_price=Decimal("0"),
            new_price=suggested,
            source=ChangeSource.CATALOG_REFRESH_INITIAL,
            changed_at=now,
        )

        logger.info("catalog_item_created", item_id=reference.id, actual_price=str(suggested))
        return PricedItem.model_validate(row), True

    async def set_actual_price(
        self,
        item_id: str,
        new_price: Decimal | float | str,
        source: ChangeSource,
    ) -> PricedItem:
        """Change an item's actual price and record the transition.

        Raises:
            InvalidArgument: If new_price is negative
            NotFound: If the item does not exist
        """
        new_price = to_decimal(new_price, "price")
        if new_price < 0:
            raise InvalidArgument(f"Price must be >= 0, got {new_price}", details={"item_id": item_id})
        new_price = quantize_price(new_price)

        row = await self._load(item_id, for_update=True)
        if row is None:
            raise NotFound(f"Item {item_id} not found", details={"item_id": item_id})

        now = utcnow()
        previous = row.actual_price

        await self.ledger.append(
            item_id,
            previous_price=previous,
            new_price=new_price,
            source=source,
            changed_at=now,
        )
        row.actual_price = new_price
        row.last_updated = now
        await self.session.flush()

        logger.info(
            "price_changed",
            item_id=item_id,
            previous_price=str(previous),
            new_price=str(new_price),
            source=ChangeSource(source).value,
        )
        return PricedItem.model_validate(row)

    async def recompute_all_suggested(self, settings: MarkupSettings) -> int:
        """Re-derive every suggested price. Actual prices and history are untouched.

        Returns:
            Number of items recomputed
        """
        result = await self.session.execute(select(PricedItemModel).with_for_update())
        count = 0
        for row in result.scalars():
            row.suggested_price = calculate_suggested_price(row.reference_price, settings)
            count += 1
        await self.session.flush()

        logger.info("suggested_prices_recomputed", items=count)
        return count
