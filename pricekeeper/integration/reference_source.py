"""Contract for external reference-price sources.

A source returns the full list of items it currently knows about. No
ordering or completeness guarantee is made across calls.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from pricekeeper.models import ReferencePrice


class ReferencePriceSource(ABC):
    """Abstract base class for reference-price feeds."""

    source_name: str = "reference"

    @abstractmethod
    async def fetch_reference_prices(self) -> list[ReferencePrice]:
        """Fetch every item's current reference price.

        Raises:
            Unavailable: If the source cannot be reached, times out or returns garbage
        """

    async def aclose(self) -> None:
        """Release network resources. No-op by default."""


class StaticReferenceSource(ReferencePriceSource):
    """Fixed in-memory feed, for offline runs and tests."""

    source_name = "static"

    def __init__(self, prices: list[ReferencePrice] | None = None):
        self.prices = list(prices or [])

    async def fetch_reference_prices(self) -> list[ReferencePrice]:
        return list(self.prices)
