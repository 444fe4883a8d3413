"""Tests for pricekeeper.web.routes.history - Price history routes."""

from datetime import datetime
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from pricekeeper.models import ChangeSource, HistoryEntry
from pricekeeper.web.app import create_app
from pricekeeper.web.dependencies import get_pricing_service


@pytest.fixture
def mock_service():
    service = MagicMock()
    service.get_history = AsyncMock(
        return_value=[
            HistoryEntry(
                id=2,
                item_id="openai/gpt-4o",
                previous_price=Decimal("12.7000"),
                new_price=Decimal("15.0000"),
                changed_at=datetime(2025, 1, 2, 12, 0),
                change_source=ChangeSource.SCHEDULED,
            ),
            HistoryEntry(
                id=1,
                item_id="openai/gpt-4o",
                previous_price=Decimal("0"),
                new_price=Decimal("12.7000"),
                changed_at=datetime(2025, 1, 1, 12, 0),
                change_source=ChangeSource.CATALOG_REFRESH_INITIAL,
            ),
        ]
    )
    return service


@pytest.fixture
def client(mock_service):
    app = create_app(with_lifespan=False, metrics=False)
    app.dependency_overrides[get_pricing_service] = lambda: mock_service
    return TestClient(app)


def test_all_history(client, mock_service):
    response = client.get("/api/price-history")

    assert response.status_code == 200
    data = response.json()
    assert [entry["change_source"] for entry in data] == ["scheduled", "catalog_refresh_initial"]
    mock_service.get_history.assert_awaited_once_with(limit=None)


def test_history_for_model(client, mock_service):
    response = client.get("/api/price-history/model/openai/gpt-4o?limit=10")

    assert response.status_code == 200
    mock_service.get_history.assert_awaited_once_with(item_id="openai/gpt-4o", limit=10)


def test_limit_must_be_positive(client):
    response = client.get("/api/price-history?limit=0")

    assert response.status_code == 422
