"""Unit tests for the OpenRouter reference-price client.

HTTP is stubbed with httpx.MockTransport; no network access.
"""

from __future__ import annotations

from decimal import Decimal

import httpx
import pytest

from pricekeeper.config import ReferenceFeedConfig
from pricekeeper.errors import Unavailable
from pricekeeper.integration.openrouter_client import (
    OpenRouterClient,
    parse_models_payload,
)

MODELS_PAYLOAD = {
    "data": [
        {
            "id": "openai/gpt-4o",
            "name": "GPT-4o",
            "pricing": {"prompt": "0.0000025", "completion": "0.00001"},
        },
        {
            "id": "anthropic/claude-3-haiku",
            "name": "Claude 3 Haiku",
            "creator": "Anthropic",
            "pricing": {"prompt": "0.00000025", "completion": "0.00000125"},
        },
        {
            "id": "free-model",
            "pricing": {"prompt": "0", "completion": None},
        },
        {"name": "no id, skipped"},
    ]
}


def _client(handler, api_key: str | None = None) -> OpenRouterClient:
    config = ReferenceFeedConfig(base_url="https://openrouter.test/api/v1", api_key=api_key)
    http = httpx.AsyncClient(
        base_url=config.base_url,
        transport=httpx.MockTransport(handler),
        headers={"Authorization": f"Bearer {api_key}"} if api_key else None,
    )
    return OpenRouterClient(config, client=http)


class TestParseModelsPayload:
    def test_uses_larger_of_prompt_and_completion(self):
        prices = parse_models_payload(MODELS_PAYLOAD, Decimal("1000000"))
        by_id = {p.id: p for p in prices}

        assert by_id["openai/gpt-4o"].reference_price == Decimal("10")
        assert by_id["anthropic/claude-3-haiku"].reference_price == Decimal("1.25")

    def test_provider_resolution(self):
        prices = {p.id: p for p in parse_models_payload(MODELS_PAYLOAD, Decimal("1000000"))}

        assert prices["openai/gpt-4o"].provider == "openai"
        assert prices["anthropic/claude-3-haiku"].provider == "Anthropic"
        assert prices["free-model"].provider == "Unknown"

    def test_missing_name_falls_back_to_id(self):
        prices = {p.id: p for p in parse_models_payload(MODELS_PAYLOAD, Decimal("1000000"))}

        assert prices["free-model"].name == "free-model"
        assert prices["free-model"].reference_price == Decimal("0")

    def test_entries_without_id_are_skipped(self):
        prices = parse_models_payload(MODELS_PAYLOAD, Decimal("1000000"))

        assert len(prices) == 3

    def test_malformed_and_negative_prices_count_as_zero(self):
        payload = {
            "data": [
                {"id": "a/bad", "pricing": {"prompt": "n/a", "completion": "-0.1"}},
                {"id": "a/none"},
            ]
        }

        prices = parse_models_payload(payload, Decimal("1000000"))

        assert [p.reference_price for p in prices] == [Decimal("0"), Decimal("0")]

    def test_missing_data_list_is_unavailable(self):
        with pytest.raises(Unavailable):
            parse_models_payload({"error": "nope"}, Decimal("1000000"))


class TestOpenRouterClient:
    @pytest.mark.asyncio
    async def test_fetch_reference_prices(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json=MODELS_PAYLOAD)

        client = _client(handler, api_key="sk-test")
        try:
            prices = await client.fetch_reference_prices()
        finally:
            await client.aclose()

        assert seen["path"] == "/api/v1/models"
        assert seen["auth"] == "Bearer sk-test"
        assert len(prices) == 3

    @pytest.mark.asyncio
    async def test_http_error_is_unavailable(self):
        client = _client(lambda request: httpx.Response(502, text="bad gateway"))

        with pytest.raises(Unavailable) as exc_info:
            await client.fetch_reference_prices()

        assert exc_info.value.details == {"status_code": 502}
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_timeout_is_unavailable(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        client = _client(handler)

        with pytest.raises(Unavailable) as exc_info:
            await client.fetch_reference_prices()

        assert "Timed out" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_transport_error_is_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = _client(handler)

        with pytest.raises(Unavailable):
            await client.fetch_reference_prices()

    @pytest.mark.asyncio
    async def test_invalid_json_is_unavailable(self):
        client = _client(lambda request: httpx.Response(200, text="<html>oops</html>"))

        with pytest.raises(Unavailable) as exc_info:
            await client.fetch_reference_prices()

        assert "invalid JSON" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_non_object_payload_is_unavailable(self):
        client = _client(lambda request: httpx.Response(200, json=[1, 2, 3]))

        with pytest.raises(Unavailable):
            await client.fetch_reference_prices()

    def test_default_client_sends_bearer_token(self):
        client = OpenRouterClient(ReferenceFeedConfig(api_key="sk-live"))

        assert client.client.headers["Authorization"] == "Bearer sk-live"
        assert str(client.client.base_url).rstrip("/") == "https://openrouter.ai/api/v1"
