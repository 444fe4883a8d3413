"""Database layer for pricekeeper with async SQLAlchemy."""

from pricekeeper.db.connection import close_db, get_engine, get_session_factory, init_db
from pricekeeper.db.models import (
    Base,
    MarkupSettingsModel,
    PriceHistoryModel,
    PricedItemModel,
    ScheduledChangeModel,
)

__all__ = [
    "Base",
    "PricedItemModel",
    "MarkupSettingsModel",
    "ScheduledChangeModel",
    "PriceHistoryModel",
    "close_db",
    "get_engine",
    "get_session_factory",
    "init_db",
]
