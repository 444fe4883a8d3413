"""pricekeeper web route modules.

Each module exports a `router` (APIRouter) included by pricekeeper.web.app.
Services are injected through pricekeeper.web.dependencies.
"""

from pricekeeper.web.routes import health, history, prices, scheduled, settings

__all__ = ["health", "history", "prices", "scheduled", "settings"]
