"""Pricing core: markup, catalog, history ledger, scheduled changes and sweeper."""

from pricekeeper.pricing.catalog import PriceCatalog
from pricekeeper.pricing.history import HistoryLedger
from pricekeeper.pricing.locks import KeyedLocks
from pricekeeper.pricing.markup import calculate_suggested_price
from pricekeeper.pricing.scheduled import ScheduledChangeRegistry
from pricekeeper.pricing.service import PricingService
from pricekeeper.pricing.settings_store import SettingsStore
from pricekeeper.pricing.sweeper import DueChangeSweeper, SweeperState

__all__ = [
    "DueChangeSweeper",
    "HistoryLedger",
    "KeyedLocks",
    "PriceCatalog",
    "PricingService",
    "ScheduledChangeRegistry",
    "SettingsStore",
    "SweeperState",
    "calculate_suggested_price",
]
