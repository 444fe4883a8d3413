"""Pricing service - the operations exposed to the web API, CLI and worker.

Each public method runs in exactly one database transaction. Mutations of an
item's actual price additionally hold that item's lock, so two writers on the
same item never interleave their read-modify-write.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Mapping
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker

from pricekeeper.config import AppConfig, MarkupDefaults
from pricekeeper.errors import InvalidArgument, Internal, NotFound, PricingError
from pricekeeper.integration.reference_source import ReferencePriceSource
from pricekeeper.models import (
    ChangeSource,
    HistoryEntry,
    MarkupSettings,
    PricedItem,
    RefreshResult,
    ScheduledChange,
    ScheduledChangeView,
    SweepResult,
    as_naive_utc,
    utcnow,
)
from pricekeeper.pricing.catalog import PriceCatalog
from pricekeeper.pricing.history import HistoryLedger
from pricekeeper.pricing.locks import KeyedLocks
from pricekeeper.pricing.markup import to_decimal
from pricekeeper.pricing.scheduled import ScheduledChangeRegistry
from pricekeeper.pricing.settings_store import SettingsStore

logger = structlog.get_logger(__name__)

PUBLIC_PRICE_PLACES = Decimal("0.000000001")
DEFAULT_CONTEXT_LENGTH = 8192
# Lock key shared by writers that derive suggested prices from the settings row
SETTINGS_LOCK_KEY = "markup-settings"


class _Unit:
    """Stores bound to one session/transaction."""

    def __init__(self, session: AsyncSession, defaults: MarkupDefaults):
        self.session = session
        self.ledger = HistoryLedger(session)
        self.catalog = PriceCatalog(session, self.ledger)
        self.registry = ScheduledChangeRegistry(session, self.catalog)
        self.settings = SettingsStore(session, defaults)


class PricingService:
    """Facade over catalog, ledger, registry and settings store."""

    def __init__(
        self,
        session_factory: sessionmaker,
        reference_source: ReferencePriceSource | None = None,
        markup_defaults: MarkupDefaults | None = None,
        seed_catalog_on_empty: bool = True,
        price_unit: Decimal = Decimal("1000000"),
        locks: KeyedLocks | None = None,
    ):
        self.session_factory = session_factory
        self.reference_source = reference_source
        self.markup_defaults = markup_defaults or MarkupDefaults()
        self.seed_catalog_on_empty = seed_catalog_on_empty
        self.price_unit = price_unit
        self.locks = locks or KeyedLocks()

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        session_factory: sessionmaker,
        reference_source: ReferencePriceSource | None = None,
    ) -> PricingService:
        return cls(
            session_factory,
            reference_source=reference_source,
            markup_defaults=config.markup,
            seed_catalog_on_empty=config.seed_catalog_on_empty,
            price_unit=config.reference.price_unit,
        )

    @asynccontextmanager
    async def _unit(self) -> AsyncGenerator[_Unit, None]:
        """Open a session, run the body in one transaction, commit or roll back.

        PricingError propagates unchanged; storage errors become Internal.
        """
        async with self.session_factory() as session:
            try:
                async with session.begin():
                    yield _Unit(session, self.markup_defaults)
            except PricingError:
                raise
            except SQLAlchemyError as exc:
                logger.error("storage_failure", error=str(exc), exc_info=True)
                raise Internal(f"Storage failure: {exc.__class__.__name__}") from exc

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    async def get_catalog(self, seed_if_empty: bool | None = None) -> list[PricedItem]:
        """All items; an empty catalog is seeded from the reference feed first."""
        seed = self.seed_catalog_on_empty if seed_if_empty is None else seed_if_empty

        if seed and self.reference_source is not None:
            async with self._unit() as unit:
                empty = await unit.catalog.count() == 0
            if empty:
                logger.info("catalog_empty_seeding")
                await self.refresh_catalog()

        async with self._unit() as unit:
            return await unit.catalog.list_items()

    async def get_item(self, item_id: str) -> PricedItem:
        async with self._unit() as unit:
            return await unit.catalog.require(item_id)

    async def refresh_catalog(self) -> RefreshResult:
        """Fetch reference prices and upsert them as one unit.

        Raises:
            Unavailable: If the fetch fails; nothing is written
        """
        if self.reference_source is None:
            raise InvalidArgument("No reference price source configured")

        references = await self.reference_source.fetch_reference_prices()
        result = RefreshResult(fetched=len(references))

        async with self.locks.hold(SETTINGS_LOCK_KEY):
            async with self._unit() as unit:
                settings = await unit.settings.get(for_update=True)
                for reference in references:
                    _, created = await unit.catalog.upsert_from_reference(reference, settings)
                    if created:
                        result.created += 1
                    else:
                        result.updated += 1

        logger.info(
            "catalog_refreshed",
            fetched=result.fetched,
            created=result.created,
            updated=result.updated,
        )
        return result

    async def set_actual_price(
        self,
        item_id: str,
        price: Decimal | float | str,
        source: ChangeSource = ChangeSource.MANUAL,
    ) -> PricedItem:
        async with self.locks.hold(item_id):
            async with self._unit() as unit:
                return await unit.catalog.set_actual_price(item_id, price, source)

    async def set_actual_prices(
        self,
        prices: Mapping[str, Decimal | float | str],
        source: ChangeSource = ChangeSource.MANUAL,
    ) -> list[PricedItem]:
        """Set several actual prices together.

        Every entry is validated before anything is written; either all
        prices change or none do.
        """
        if not prices:
            raise InvalidArgument("No actual prices provided")

        parsed: dict[str, Decimal] = {}
        for item_id, price in prices.items():
            value = to_decimal(price, f"price for {item_id}")
            if value < 0:
                raise InvalidArgument(
                    f"Price for {item_id} must be >= 0, got {value}",
                    details={"item_id": item_id},
                )
            parsed[item_id] = value

        async with self.locks.hold_many(parsed):
            async with self._unit() as unit:
                missing = [i for i in parsed if await unit.catalog.get(i) is None]
                if missing:
                    raise NotFound(
                        f"Unknown items: {', '.join(sorted(missing))}",
                        details={"item_ids": sorted(missing)},
                    )
                return [
                    await unit.catalog.set_actual_price(item_id, value, source)
                    for item_id, value in parsed.items()
                ]

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    async def get_settings(self) -> MarkupSettings:
        async with self._unit() as unit:
            return await unit.settings.get()

    async def update_settings(
        self,
        percentage_markup: Decimal | float | str | None = None,
        flat_fee_markup: Decimal | float | str | None = None,
    ) -> MarkupSettings:
        """Update markup and recompute every suggested price in the same transaction.

        Serialised with refresh_catalog on the settings row, so a refresh never
        writes suggested prices from settings this update has replaced.
        """
        async with self.locks.hold(SETTINGS_LOCK_KEY):
            async with self._unit() as unit:
                settings = await unit.settings.update(
                    percentage_markup=percentage_markup,
                    flat_fee_markup=flat_fee_markup,
                )
                await unit.catalog.recompute_all_suggested(settings)
                return settings

    # ------------------------------------------------------------------
    # Scheduled changes
    # ------------------------------------------------------------------

    async def create_scheduled_change(
        self,
        item_id: str,
        price: Decimal | float | str,
        effective_at: datetime,
    ) -> ScheduledChange:
        async with self._unit() as unit:
            return await unit.registry.create(item_id, price, effective_at)

    async def list_scheduled_changes(self, item_id: str | None = None) -> list[ScheduledChangeView]:
        async with self._unit() as unit:
            if item_id is not None:
                return await unit.registry.list_pending_for_item(item_id)
            return await unit.registry.list_pending()

    async def cancel_scheduled_change(self, change_id: int) -> None:
        async with self._unit() as unit:
            await unit.registry.cancel(change_id)

    async def apply_scheduled_change(
        self,
        change_id: int,
        now: datetime | None = None,
    ) -> PricedItem:
        """Apply one change now, whatever its effective time.

        Raises:
            NotFound: Unknown change, or its item no longer exists
            FailedPrecondition: Already applied (including by a concurrent sweep)
        """
        async with self._unit() as unit:
            change = await unit.registry.get(change_id)

        async with self.locks.hold(change.item_id):
            async with self._unit() as unit:
                return await unit.registry.apply(change_id, now=now)

    async def apply_due_scheduled_changes(self, now: datetime | None = None) -> SweepResult:
        """One sweep: apply every pending change whose effective time has passed.

        Failures are logged per entry and never abort the sweep; a failed
        entry stays pending for the next sweep.
        """
        now = as_naive_utc(now) if now else utcnow()
        async with self._unit() as unit:
            due = await unit.registry.due_ids(now)

        result = SweepResult(due=len(due))
        for change_id in due:
            try:
                await self.apply_scheduled_change(change_id, now=now)
            except PricingError as exc:
                result.failed += 1
                result.failed_ids.append(change_id)
                logger.warning(
                    "sweep_entry_failed",
                    change_id=change_id,
                    code=exc.code,
                    error=exc.message,
                )
            except Exception:
                result.failed += 1
                result.failed_ids.append(change_id)
                logger.exception("sweep_entry_failed", change_id=change_id)
            else:
                result.applied += 1
                result.applied_ids.append(change_id)

        logger.info(
            "sweep_completed",
            due=result.due,
            applied=result.applied,
            failed=result.failed,
        )
        return result

    # ------------------------------------------------------------------
    # History and public feed
    # ------------------------------------------------------------------

    async def get_history(
        self,
        item_id: str | None = None,
        limit: int | None = None,
    ) -> list[HistoryEntry]:
        """History entries, newest first."""
        async with self._unit() as unit:
            return await unit.ledger.list(item_id=item_id, limit=limit)

    async def public_pricing_feed(self) -> dict:
        """Catalog in OpenRouter's per-token format, using actual prices."""
        async with self._unit() as unit:
            items = await unit.catalog.list_items()

        data = []
        for item in items:
            # Fixed-point: str() would switch to exponent notation below 1e-6
            per_token = format((item.actual_price / self.price_unit).quantize(PUBLIC_PRICE_PLACES), "f")
            data.append(
                {
                    "id": item.id,
                    "name": item.name,
                    "pricing": {"prompt": per_token, "completion": per_token},
                    "context_length": DEFAULT_CONTEXT_LENGTH,
                    "creator": item.provider,
                }
            )
        return {"data": data}
