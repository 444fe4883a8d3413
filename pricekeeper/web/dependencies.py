"""Shared dependencies for pricekeeper web routes.

Routes receive the service and sweeper through FastAPI's Depends() so tests
can swap them with app.dependency_overrides.
"""

from __future__ import annotations

from pricekeeper.config import get_config
from pricekeeper.db.connection import get_session_factory
from pricekeeper.integration.openrouter_client import OpenRouterClient
from pricekeeper.pricing.service import PricingService
from pricekeeper.pricing.sweeper import DueChangeSweeper

# Global singletons
_service: PricingService | None = None
_sweeper: DueChangeSweeper | None = None


def get_pricing_service() -> PricingService:
    """Get or create the process-wide PricingService."""
    global _service
    if _service is None:
        config = get_config()
        _service = PricingService.from_config(
            config,
            get_session_factory(),
            reference_source=OpenRouterClient(config.reference),
        )
    return _service


def get_sweeper() -> DueChangeSweeper:
    """Get or create the process-wide sweeper bound to the shared service."""
    global _sweeper
    if _sweeper is None:
        _sweeper = DueChangeSweeper.from_config(get_pricing_service(), get_config().sweeper)
    return _sweeper


async def reset_dependencies() -> None:
    """Stop the sweeper and drop singletons (shutdown and tests)."""
    global _service, _sweeper
    if _sweeper is not None:
        await _sweeper.stop()
    if _service is not None and _service.reference_source is not None:
        await _service.reference_source.aclose()
    _service = None
    _sweeper = None
