"""Markup settings singleton (single row, updated in place)."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pricekeeper.config import MarkupDefaults
from pricekeeper.db.models import MarkupSettingsModel
from pricekeeper.errors import InvalidArgument
from pricekeeper.models import MarkupSettings, utcnow
from pricekeeper.pricing.markup import to_decimal

logger = structlog.get_logger(__name__)

# Matches the MARKUP_NUMERIC column scale
MARKUP_QUANTUM = Decimal("0.01")


class SettingsStore:
    """Read and update the live markup configuration."""

    def __init__(self, session: AsyncSession, defaults: MarkupDefaults | None = None):
        self.session = session
        self.defaults = defaults or MarkupDefaults()

    async def _load_row(self, for_update: bool = False) -> MarkupSettingsModel:
        stmt = select(MarkupSettingsModel).order_by(MarkupSettingsModel.id).limit(1)
        if for_update:
            stmt = stmt.with_for_update()
        row = (await self.session.execute(stmt)).scalar_one_or_none()
        if row is None:
            row = MarkupSettingsModel(
                percentage_markup=_to_markup(self.defaults.percentage_markup, "percentage_markup"),
                flat_fee_markup=_to_markup(self.defaults.flat_fee_markup, "flat_fee_markup"),
                last_updated=utcnow(),
            )
            self.session.add(row)
            await self.session.flush()
            logger.info(
                "markup_settings_created",
                percentage_markup=str(row.percentage_markup),
                flat_fee_markup=str(row.flat_fee_markup),
            )
        return row

    async def get(self, for_update: bool = False) -> MarkupSettings:
        """Return current settings, creating the default row on first access.

        for_update locks the row until the transaction ends, so writers that
        derive prices from the settings see a value that cannot change under them.
        """
        return MarkupSettings.model_validate(await self._load_row(for_update=for_update))

    async def update(
        self,
        percentage_markup: Decimal | float | str | None = None,
        flat_fee_markup: Decimal | float | str | None = None,
    ) -> MarkupSettings:
        """Validate and apply a partial update.

        Values are rounded half-up to two places, the precision the row keeps,
        before anything is written. Callers must follow a successful update
        with PriceCatalog.recompute_all_suggested().

        Raises:
            InvalidArgument: If no field is given or a given field is negative
        """
        if percentage_markup is None and flat_fee_markup is None:
            raise InvalidArgument("No settings provided")

        updates: dict[str, Decimal] = {}
        if percentage_markup is not None:
            updates["percentage_markup"] = _to_markup(percentage_markup, "percentage_markup")
        if flat_fee_markup is not None:
            updates["flat_fee_markup"] = _to_markup(flat_fee_markup, "flat_fee_markup")

        for name, value in updates.items():
            if value < 0:
                raise InvalidArgument(f"{name} must be >= 0, got {value}", details={name: str(value)})

        row = await self._load_row(for_update=True)
        for name, value in updates.items():
            setattr(row, name, value)
        row.last_updated = utcnow()
        await self.session.flush()

        logger.info("markup_settings_updated", **{k: str(v) for k, v in updates.items()})
        return MarkupSettings.model_validate(row)


def _to_markup(value: Decimal | float | str, field: str) -> Decimal:
    return to_decimal(value, field).quantize(MARKUP_QUANTUM, rounding=ROUND_HALF_UP)
