"""Health check route: database connectivity and sweeper state."""

from fastapi import APIRouter, Depends, status
from sqlalchemy import text

from pricekeeper.pricing.service import PricingService
from pricekeeper.pricing.sweeper import DueChangeSweeper
from pricekeeper.web.dependencies import get_pricing_service, get_sweeper

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("", status_code=status.HTTP_200_OK)
async def health_check(
    service: PricingService = Depends(get_pricing_service),
    sweeper: DueChangeSweeper = Depends(get_sweeper),
):
    """Check application health."""
    sweeper_info = {
        "running": sweeper.running,
        "state": sweeper.state.value,
        "last_run_at": sweeper.last_run_at.isoformat() if sweeper.last_run_at else None,
    }
    try:
        async with service.session_factory() as session:
            await session.execute(text("SELECT 1"))
        return {"status": "ok", "database": "connected", "sweeper": sweeper_info}
    except Exception as e:
        return {
            "status": "error",
            "database": "disconnected",
            "detail": str(e),
            "sweeper": sweeper_info,
        }
