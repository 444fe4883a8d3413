"""OpenRouter model-list client used as the reference-price feed."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

import httpx
import structlog

from pricekeeper.config import ReferenceFeedConfig
from pricekeeper.errors import Unavailable
from pricekeeper.integration.reference_source import ReferencePriceSource
from pricekeeper.models import ReferencePrice

logger = structlog.get_logger(__name__)


def _per_token(value: Any) -> Decimal:
    """Parse an upstream per-token price; missing or malformed values count as 0."""
    if value in (None, ""):
        return Decimal("0")
    try:
        price = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal("0")
    if not price.is_finite() or price < 0:
        return Decimal("0")
    return price


def _provider_for(model: dict[str, Any]) -> str:
    creator = model.get("creator")
    if creator:
        return str(creator)
    model_id = str(model.get("id", ""))
    if "/" in model_id:
        return model_id.split("/", 1)[0]
    return "Unknown"


def parse_models_payload(payload: dict[str, Any], price_unit: Decimal) -> list[ReferencePrice]:
    """Convert an OpenRouter /models response into reference prices.

    The reference price is the larger of the prompt and completion per-token
    prices, scaled by price_unit (per-million tokens by default).
    """
    models = payload.get("data")
    if not isinstance(models, list):
        raise Unavailable("Reference feed returned no model list", details={"keys": list(payload)})

    prices: list[ReferencePrice] = []
    for model in models:
        if not isinstance(model, dict) or not model.get("id"):
            continue
        pricing = model.get("pricing") or {}
        prompt = _per_token(pricing.get("prompt", pricing.get("input")))
        completion = _per_token(pricing.get("completion"))

        prices.append(
            ReferencePrice(
                id=str(model["id"]),
                name=str(model.get("name") or model["id"]),
                provider=_provider_for(model),
                reference_price=max(prompt, completion) * price_unit,
            )
        )
    return prices


class OpenRouterClient(ReferencePriceSource):
    """Fetches model prices from the OpenRouter API."""

    source_name = "openrouter"

    def __init__(
        self,
        config: ReferenceFeedConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.config = config or ReferenceFeedConfig()

        headers = {"Accept": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"

        self.client = client or httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=self.config.timeout_seconds,
            headers=headers,
        )

    async def fetch_reference_prices(self) -> list[ReferencePrice]:
        """Fetch all models in one request.

        Raises:
            Unavailable: On timeout, transport error, HTTP error or malformed body
        """
        try:
            response = await self.client.get("/models")
            response.raise_for_status()
            payload = response.json()
        except httpx.TimeoutException as exc:
            logger.error("reference_fetch_failed", reason="timeout", error=str(exc))
            raise Unavailable("Timed out fetching reference prices") from exc
        except httpx.HTTPStatusError as exc:
            logger.error(
                "reference_fetch_failed",
                reason="http_status",
                status_code=exc.response.status_code,
            )
            raise Unavailable(
                f"Reference feed returned HTTP {exc.response.status_code}",
                details={"status_code": exc.response.status_code},
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("reference_fetch_failed", reason="transport", error=str(exc))
            raise Unavailable(f"Failed to fetch reference prices: {exc}") from exc
        except ValueError as exc:
            logger.error("reference_fetch_failed", reason="invalid_json", error=str(exc))
            raise Unavailable("Reference feed returned invalid JSON") from exc

        if not isinstance(payload, dict):
            raise Unavailable("Reference feed returned an unexpected payload")

        prices = parse_models_payload(payload, self.config.price_unit)
        logger.info("reference_prices_fetched", source=self.source_name, count=len(prices))
        return prices

    async def aclose(self) -> None:
        await self.client.aclose()
