"""Integration tests for PriceCatalog and HistoryLedger against SQLite.

Every actual-price transition must come with exactly one history row.
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from pricekeeper.db.models import PriceHistoryModel, PricedItemModel
from pricekeeper.errors import InvalidArgument, NotFound
from pricekeeper.models import ChangeSource, MarkupSettings, ReferencePrice
from pricekeeper.pricing.catalog import PriceCatalog
from pricekeeper.pricing.history import HistoryLedger

pytestmark = pytest.mark.integration

DEFAULT_SETTINGS = MarkupSettings(percentage_markup=Decimal("25"), flat_fee_markup=Decimal("0.2"))


def _ref(price: str, item_id: str = "openai/gpt-4o", name: str = "GPT-4o") -> ReferencePrice:
    return ReferencePrice(id=item_id, name=name, provider="openai", reference_price=Decimal(price))


@pytest.mark.asyncio
async def test_new_item_starts_at_suggested_with_initial_history(db_session):
    catalog = PriceCatalog(db_session)

    item, created = await catalog.upsert_from_reference(_ref("10"), DEFAULT_SETTINGS)
    await db_session.commit()

    assert created is True
    assert item.suggested_price == Decimal("12.70")
    assert item.actual_price == Decimal("12.70")

    history = await HistoryLedger(db_session).list(item_id="openai/gpt-4o")
    assert len(history) == 1
    assert history[0].previous_price == Decimal("0")
    assert history[0].new_price == Decimal("12.70")
    assert history[0].change_source is ChangeSource.CATALOG_REFRESH_INITIAL


@pytest.mark.asyncio
async def test_refresh_of_existing_item_preserves_actual_price(db_session):
    catalog = PriceCatalog(db_session)
    await catalog.upsert_from_reference(_ref("10"), DEFAULT_SETTINGS)
    await catalog.set_actual_price("openai/gpt-4o", Decimal("14"), ChangeSource.MANUAL)
    await db_session.commit()

    item, created = await catalog.upsert_from_reference(
        _ref("20", name="GPT-4o (2024-08)"), DEFAULT_SETTINGS
    )
    await db_session.commit()

    assert created is False
    assert item.name == "GPT-4o (2024-08)"
    assert item.reference_price == Decimal("20")
    assert item.suggested_price == Decimal("25.20")
    assert item.actual_price == Decimal("14")

    # initial + manual; the refresh itself adds nothing
    history = await HistoryLedger(db_session).list(item_id="openai/gpt-4o")
    assert len(history) == 2


@pytest.mark.asyncio
async def test_set_actual_price_records_transition(db_session):
    catalog = PriceCatalog(db_session)
    await catalog.upsert_from_reference(_ref("10"), DEFAULT_SETTINGS)

    item = await catalog.set_actual_price("openai/gpt-4o", "15", ChangeSource.MANUAL)
    await db_session.commit()

    assert item.actual_price == Decimal("15")
    latest = (await HistoryLedger(db_session).list(item_id="openai/gpt-4o", limit=1))[0]
    assert latest.previous_price == Decimal("12.70")
    assert latest.new_price == Decimal("15")
    assert latest.change_source is ChangeSource.MANUAL


@pytest.mark.asyncio
async def test_setting_same_price_still_records_history(db_session):
    catalog = PriceCatalog(db_session)
    await catalog.upsert_from_reference(_ref("10"), DEFAULT_SETTINGS)

    await catalog.set_actual_price("openai/gpt-4o", "12.70", ChangeSource.MANUAL)
    await db_session.commit()

    history = await HistoryLedger(db_session).list(item_id="openai/gpt-4o")
    assert len(history) == 2
    assert history[0].previous_price == history[0].new_price


@pytest.mark.asyncio
async def test_negative_price_rejected_without_writes(db_session):
    catalog = PriceCatalog(db_session)
    await catalog.upsert_from_reference(_ref("10"), DEFAULT_SETTINGS)
    await db_session.commit()

    with pytest.raises(InvalidArgument):
        await catalog.set_actual_price("openai/gpt-4o", "-1", ChangeSource.MANUAL)

    assert len(await HistoryLedger(db_session).list()) == 1


@pytest.mark.asyncio
async def test_unknown_item_not_found(db_session):
    catalog = PriceCatalog(db_session)

    with pytest.raises(NotFound):
        await catalog.set_actual_price("nope/model", "1", ChangeSource.MANUAL)
    with pytest.raises(NotFound):
        await catalog.require("nope/model")
    assert await catalog.get("nope/model") is None


@pytest.mark.asyncio
async def test_recompute_changes_suggested_only(db_session):
    catalog = PriceCatalog(db_session)
    await catalog.upsert_from_reference(_ref("10"), DEFAULT_SETTINGS)
    await db_session.commit()
    before = await catalog.require("openai/gpt-4o")

    count = await catalog.recompute_all_suggested(
        MarkupSettings(percentage_markup=Decimal("30"), flat_fee_markup=Decimal("0.2"))
    )
    await db_session.commit()

    after = await catalog.require("openai/gpt-4o")
    assert count == 1
    assert after.suggested_price == Decimal("13.20")
    assert after.actual_price == before.actual_price
    assert after.last_updated == before.last_updated
    assert len(await HistoryLedger(db_session).list()) == 1


@pytest.mark.asyncio
async def test_list_items_ordered_by_provider_then_id(db_session):
    catalog = PriceCatalog(db_session)
    for ref in (
        ReferencePrice(id="openai/b", name="b", provider="openai", reference_price=Decimal("1")),
        ReferencePrice(id="anthropic/z", name="z", provider="anthropic", reference_price=Decimal("1")),
        ReferencePrice(id="openai/a", name="a", provider="openai", reference_price=Decimal("1")),
    ):
        await catalog.upsert_from_reference(ref, DEFAULT_SETTINGS)
    await db_session.commit()

    items = await catalog.list_items()

    assert [i.id for i in items] == ["anthropic/z", "openai/a", "openai/b"]
    assert await catalog.count() == 3


@pytest.mark.asyncio
async def test_negative_actual_price_blocked_by_database(db_session):
    db_session.add(
        PricedItemModel(
            id="bad/item",
            name="bad",
            provider="bad",
            reference_price=Decimal("1"),
            suggested_price=Decimal("1"),
            actual_price=Decimal("-1"),
        )
    )

    with pytest.raises(IntegrityError):
        await db_session.commit()


@pytest.mark.asyncio
async def test_history_source_constrained_by_database(db_session):
    catalog = PriceCatalog(db_session)
    await catalog.upsert_from_reference(_ref("10"), DEFAULT_SETTINGS)
    await db_session.commit()

    db_session.add(
        PriceHistoryModel(
            item_id="openai/gpt-4o",
            previous_price=Decimal("1"),
            new_price=Decimal("2"),
            change_source="bulk_import",
        )
    )

    with pytest.raises(IntegrityError):
        await db_session.commit()


@pytest.mark.asyncio
async def test_history_ordering_newest_first(db_session):
    catalog = PriceCatalog(db_session)
    await catalog.upsert_from_reference(_ref("10"), DEFAULT_SETTINGS)
    for price in ("13", "14", "15"):
        await catalog.set_actual_price("openai/gpt-4o", price, ChangeSource.MANUAL)
    await db_session.commit()

    rows = (await db_session.execute(select(PriceHistoryModel))).scalars().all()
    history = await HistoryLedger(db_session).list(item_id="openai/gpt-4o")

    assert len(rows) == 4
    assert [h.new_price for h in history] == [
        Decimal("15"),
        Decimal("14"),
        Decimal("13"),
        Decimal("12.70"),
    ]
