"""Append-only price history ledger.

Rows are only ever inserted, and only by PriceCatalog as part of an
actual-price transition.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pricekeeper.db.models import PriceHistoryModel
from pricekeeper.models import ChangeSource, HistoryEntry, utcnow


class HistoryLedger:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def append(
        self,
        item_id: str,
        previous_price: Decimal,
        new_price: Decimal,
        source: ChangeSource,
        changed_at: datetime | None = None,
    ) -> HistoryEntry:
        """Insert one transition and flush so it precedes the price write."""
        row = PriceHistoryModel(
            item_id=item_id,
            previous_price=previous_price,
            new_price=new_price,
            change_source=ChangeSource(source).value,
            changed_at=changed_at or utcnow(),
        )
        self.session.add(row)
        await self.session.flush()
        return HistoryEntry.model_validate(row)

    async def list(self, item_id: str | None = None, limit: int | None = None) -> list[HistoryEntry]:
        """Return entries newest first, optionally for one item."""
        stmt = select(PriceHistoryModel).order_by(
            PriceHistoryModel.changed_at.desc(), PriceHistoryModel.id.desc()
        )
        if item_id is not None:
            stmt = stmt.where(PriceHistoryModel.item_id == item_id)
        if limit is not None:
            stmt = stmt.limit(limit)

        result = await self.session.execute(stmt)
        return [HistoryEntry.model_validate(row) for row in result.scalars()]
