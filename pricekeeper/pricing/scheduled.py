"""Registry of future-dated price changes.

An entry moves from pending to applied exactly once. apply() writes the
catalog first and flips the flag second with a conditional update, so a
failed catalog write leaves the entry pending and a lost race is detected
instead of applying the same change twice.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from pricekeeper.db.models import PricedItemModel, ScheduledChangeModel
from pricekeeper.errors import FailedPrecondition, InvalidArgument, NotFound
from pricekeeper.models import (
    ChangeSource,
    PricedItem,
    ScheduledChange,
    ScheduledChangeView,
    as_naive_utc,
    utcnow,
)
from pricekeeper.pricing.catalog import PriceCatalog
from pricekeeper.pricing.markup import quantize_price, to_decimal

logger = structlog.get_logger(__name__)


class ScheduledChangeRegistry:
    """Create, list, cancel and apply scheduled price changes."""

    def __init__(self, session: AsyncSession, catalog: PriceCatalog | None = None):
        self.session = session
        self.catalog = catalog or PriceCatalog(session)

    async def _load(self, change_id: int, for_update: bool = False) -> ScheduledChangeModel:
        # Always re-read the applied flag from the database, never the identity map
        stmt = (
            select(ScheduledChangeModel)
            .where(ScheduledChangeModel.id == change_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        row = (await self.session.execute(stmt)).scalar_one_or_none()
        if row is None:
            raise NotFound(
                f"Scheduled change {change_id} not found",
                details={"change_id": change_id},
            )
        return row

    async def get(self, change_id: int) -> ScheduledChange:
        return ScheduledChange.model_validate(await self._load(change_id))

    async def create(
        self,
        item_id: str,
        scheduled_price: Decimal | float | str,
        effective_at: datetime,
        now: datetime | None = None,
    ) -> ScheduledChange:
        """Store a new pending change.

        Raises:
            InvalidArgument: If the price is negative or effective_at is not in the future
            NotFound: If the item does not exist
        """
        now = as_naive_utc(now) if now else utcnow()
        price = to_decimal(scheduled_price, "scheduled_price")
        if price < 0:
            raise InvalidArgument(f"Scheduled price must be >= 0, got {price}")
        if not isinstance(effective_at, datetime):
            raise InvalidArgument(f"effective_at must be a datetime, got {effective_at!r}")
        effective_at = as_naive_utc(effective_at)
        if effective_at <= now:
            raise InvalidArgument(
                "Effective date must be in the future",
                details={"effective_at": effective_at.isoformat(), "now": now.isoformat()},
            )

        await self.catalog.require(item_id)

        row = ScheduledChangeModel(
            item_id=item_id,
            scheduled_price=quantize_price(price),
            effective_at=effective_at,
            created_at=now,
            applied=False,
        )
        self.session.add(row)
        await self.session.flush()

        logger.info(
            "scheduled_change_created",
            change_id=row.id,
            item_id=item_id,
            scheduled_price=str(row.scheduled_price),
            effective_at=effective_at.isoformat(),
        )
        return ScheduledChange.model_validate(row)

    async def list_pending(self, item_id: str | None = None) -> list[ScheduledChangeView]:
        """Pending changes ordered by effective time, joined with current item state."""
        stmt = (
            select(ScheduledChangeModel, PricedItemModel)
            .join(PricedItemModel, PricedItemModel.id == ScheduledChangeModel.item_id)
            .where(ScheduledChangeModel.applied.is_(False))
            .order_by(ScheduledChangeModel.effective_at, ScheduledChangeModel.id)
        )
        if item_id is not None:
            stmt = stmt.where(ScheduledChangeModel.item_id == item_id)

        rows = await self.session.execute(stmt)
        views = []
        for change, item in rows.all():
            views.append(
                ScheduledChangeView(
                    **ScheduledChange.model_validate(change).model_dump(),
                    item_name=item.name,
                    provider=item.provider,
                    current_price=item.actual_price,
                )
            )
        return views

    async def list_pending_for_item(self, item_id: str) -> list[ScheduledChangeView]:
        return await self.list_pending(item_id=item_id)

    async def due_ids(self, now: datetime | None = None) -> list[int]:
        """Ids of pending changes whose effective time has passed."""
        now = as_naive_utc(now) if now else utcnow()
        stmt = (
            select(ScheduledChangeModel.id)
            .where(
                ScheduledChangeModel.applied.is_(False),
                ScheduledChangeModel.effective_at <= now,
            )
            .order_by(ScheduledChangeModel.effective_at, ScheduledChangeModel.id)
        )
        return list((await self.session.execute(stmt)).scalars())

    async def cancel(self, change_id: int) -> None:
        """Delete a pending change.

        Raises:
            NotFound: If the change does not exist
            FailedPrecondition: If the change was already applied
        """
        row = await self._load(change_id, for_update=True)
        if row.applied:
            raise FailedPrecondition(
                f"Scheduled change {change_id} was already applied and cannot be cancelled",
                details={"change_id": change_id},
            )
        await self.session.execute(
            delete(ScheduledChangeModel).where(
                ScheduledChangeModel.id == change_id,
                ScheduledChangeModel.applied.is_(False),
            )
        )
        logger.info("scheduled_change_cancelled", change_id=change_id, item_id=row.item_id)

    async def apply(self, change_id: int, now: datetime | None = None) -> PricedItem:
        """Apply a pending change to the catalog and mark it applied.

        Raises:
            NotFound: If the change (or its item) does not exist
            FailedPrecondition: If the change was already applied
        """
        now = as_naive_utc(now) if now else utcnow()
        row = await self._load(change_id, for_update=True)
        if row.applied:
            raise FailedPrecondition(
                f"Scheduled change {change_id} was already applied",
                details={"change_id": change_id, "applied_at": row.applied_at and row.applied_at.isoformat()},
            )

        item = await self.catalog.set_actual_price(
            row.item_id, row.scheduled_price, ChangeSource.SCHEDULED
        )

        result = await self.session.execute(
            update(ScheduledChangeModel)
            .where(
                ScheduledChangeModel.id == change_id,
                ScheduledChangeModel.applied.is_(False),
            )
            .values(applied=True, applied_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            # Another writer applied it between our read and our update; the
            # caller's transaction rolls back the catalog write.
            raise FailedPrecondition(
                f"Scheduled change {change_id} was applied concurrently",
                details={"change_id": change_id},
            )

        logger.info(
            "scheduled_change_applied",
            change_id=change_id,
            item_id=row.item_id,
            new_price=str(item.actual_price),
        )
        return item
