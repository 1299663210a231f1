"""Shared fixtures: an in-memory Redis per test and helpers to build orders."""

from datetime import datetime, timezone
from uuid import uuid4

import fakeredis
import pytest
import pytest_asyncio

from order_store.models import LineItem, Order
from order_store.repository import OrderRepository


@pytest.fixture
def redis_server():
    return fakeredis.FakeServer()


@pytest_asyncio.fixture
async def redis_client(redis_server):
    client = fakeredis.FakeAsyncRedis(server=redis_server, decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture
def repo(redis_client):
    return OrderRepository(redis_client)


def _make_order(order_id: int = 42, **overrides) -> Order:
    fields = dict(
        order_id=order_id,
        customer_id=uuid4(),
        line_items=[
            LineItem(item_id=uuid4(), quantity=2, price=1500),
            LineItem(item_id=uuid4(), quantity=1, price=990),
        ],
        created_at=datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc),
    )
    fields.update(overrides)
    return Order(**fields)


@pytest.fixture
def make_order():
    """Factory for a valid freshly-created order (two line items, unshipped)."""
    return _make_order
