"""arq worker: cron-driven sweep plus on-demand jobs.

Run with ``arq pricekeeper.worker.WorkerSettings``. This is the alternative
to the in-process sweeper for deployments that run several API replicas.
"""

import os
from typing import Any

import structlog
from arq.connections import RedisSettings
from arq.cron import cron

from pricekeeper.config import get_config
from pricekeeper.core.logging import configure_logging
from pricekeeper.db.connection import close_db, get_session_factory
from pricekeeper.integration.openrouter_client import OpenRouterClient
from pricekeeper.pricing.service import PricingService

logger = structlog.get_logger(__name__)

DEFAULT_REDIS_URL = "redis://localhost:6379"


async def startup(ctx: dict[str, Any]) -> None:
    """Initialize resources when worker starts."""
    config = get_config()
    configure_logging(config.log_level, config.log_format)
    ctx["service"] = PricingService.from_config(
        config,
        get_session_factory(),
        reference_source=OpenRouterClient(config.reference),
    )
    logger.info("worker_started")


async def shutdown(ctx: dict[str, Any]) -> None:
    """Cleanup resources when worker stops."""
    service: PricingService | None = ctx.get("service")
    if service is not None and service.reference_source is not None:
        await service.reference_source.aclose()
    await close_db()
    logger.info("worker_stopped")


async def apply_due_scheduled_changes_job(ctx: dict[str, Any]) -> dict[str, Any]:
    """One sweep; also scheduled as a cron job every five minutes."""
    result = await ctx["service"].apply_due_scheduled_changes()
    return result.model_dump()


async def apply_scheduled_change_job(ctx: dict[str, Any], change_id: int) -> dict[str, Any]:
    """Apply a single scheduled change out of band."""
    item = await ctx["service"].apply_scheduled_change(change_id)
    return item.model_dump(mode="json")


async def refresh_catalog_job(ctx: dict[str, Any]) -> dict[str, Any]:
    """Pull reference prices into the catalog."""
    result = await ctx["service"].refresh_catalog()
    return result.model_dump()


def redis_settings_from_env() -> RedisSettings:
    """arq connection settings from REDIS_URL.

    Read here rather than through AppConfig: arq evaluates WorkerSettings at
    import time, before DATABASE_URL needs to be present.
    """
    return RedisSettings.from_dsn(os.environ.get("REDIS_URL", DEFAULT_REDIS_URL))


class WorkerSettings:
    functions = [
        apply_due_scheduled_changes_job,
        apply_scheduled_change_job,
        refresh_catalog_job,
    ]
    cron_jobs = [
        cron(
            apply_due_scheduled_changes_job,
            minute=set(range(0, 60, 5)),
            run_at_startup=True,
        )
    ]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = redis_settings_from_env()
