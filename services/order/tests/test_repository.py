"""Tests for the Redis-backed OrderRepository.

Every test runs against its own in-memory Redis server, so the checks on
the raw key space (order:<id> records and the ``orders`` index set) see
exactly what the repository wrote.
"""

import asyncio
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest

from order_store.errors import (
    OrderConflictError,
    OrderDecodeError,
    OrderNotFoundError,
    StorageUnavailableError,
)
from order_store.models import ORDERS_SET_KEY, order_key


@pytest.mark.asyncio
async def test_create_then_find_returns_equal_order(repo, make_order):
    order = make_order(7)
    await repo.create(order)

    found = await repo.find_by_id(7)

    assert found == order


@pytest.mark.asyncio
async def test_create_writes_record_and_index_entry(repo, redis_client, make_order):
    await repo.create(make_order(7))

    assert await redis_client.exists("order:7") == 1
    assert await redis_client.smembers(ORDERS_SET_KEY) == {"order:7"}


@pytest.mark.asyncio
async def test_create_omits_unset_timestamps(repo, redis_client, make_order):
    await repo.create(make_order(7))

    raw = await redis_client.get("order:7")
    assert "shipped_at" not in raw
    assert "completed_at" not in raw


@pytest.mark.asyncio
async def test_create_duplicate_id_conflicts_and_keeps_original(repo, redis_client, make_order):
    original = make_order(7)
    await repo.create(original)

    with pytest.raises(OrderConflictError):
        await repo.create(make_order(7, customer_id=uuid4()))

    assert await repo.find_by_id(7) == original
    assert await redis_client.scard(ORDERS_SET_KEY) == 1


@pytest.mark.asyncio
async def test_create_collision_does_not_touch_index(repo, redis_client, make_order):
    """A record that exists outside the index still blocks creation."""
    await redis_client.set(order_key(9), make_order(9).model_dump_json())

    with pytest.raises(OrderConflictError):
        await repo.create(make_order(9))

    assert await redis_client.scard(ORDERS_SET_KEY) == 0


@pytest.mark.asyncio
async def test_find_missing_raises_not_found(repo):
    with pytest.raises(OrderNotFoundError) as e:
        await repo.find_by_id(12345)
    assert e.value.order_id == 12345


@pytest.mark.asyncio
async def test_find_undecodable_record_raises_decode_error(repo, redis_client):
    await redis_client.set("order:3", "{not json")

    with pytest.raises(OrderDecodeError):
        await repo.find_by_id(3)


@pytest.mark.asyncio
async def test_update_replaces_existing_record(repo, make_order):
    order = make_order(7)
    await repo.create(order)

    shipped = order.model_copy(update={"shipped_at": order.created_at})
    await repo.update_by_id(shipped)

    assert (await repo.find_by_id(7)).shipped_at == order.created_at


@pytest.mark.asyncio
async def test_update_missing_raises_not_found_without_creating(repo, redis_client, make_order):
    with pytest.raises(OrderNotFoundError):
        await repo.update_by_id(make_order(7))

    assert await redis_client.exists("order:7") == 0


@pytest.mark.asyncio
async def test_update_after_concurrent_delete_is_reported(repo, redis_client, make_order):
    await repo.create(make_order(7))
    fetched = await repo.find_by_id(7)
    await repo.delete_by_id(7)

    with pytest.raises(OrderNotFoundError):
        await repo.update_by_id(fetched.model_copy(update={"shipped_at": fetched.created_at}))

    assert await redis_client.exists("order:7") == 0


@pytest.mark.asyncio
async def test_delete_removes_record_and_index_entry(repo, redis_client, make_order):
    await repo.create(make_order(7))
    await repo.create(make_order(8))

    await repo.delete_by_id(7)

    assert await redis_client.exists("order:7") == 0
    assert await redis_client.smembers(ORDERS_SET_KEY) == {"order:8"}
    with pytest.raises(OrderNotFoundError):
        await repo.find_by_id(7)


@pytest.mark.asyncio
async def test_delete_missing_raises_not_found(repo, redis_client, make_order):
    await repo.create(make_order(8))

    with pytest.raises(OrderNotFoundError):
        await repo.delete_by_id(7)

    assert await redis_client.smembers(ORDERS_SET_KEY) == {"order:8"}


@pytest.mark.asyncio
async def test_list_empty_store_skips_fetch(repo, redis_client):
    with patch.object(redis_client, "mget", wraps=redis_client.mget) as mget:
        page = await repo.list_page(cursor=0, size=50)

    assert page.orders == []
    assert page.cursor == 0
    mget.assert_not_called()


@pytest.mark.asyncio
async def test_list_preserves_scan_order(repo, redis_client, make_order):
    for order_id in (1, 2, 3):
        await repo.create(make_order(order_id))
    _, scanned = await redis_client.sscan(ORDERS_SET_KEY, cursor=0, count=50)

    page = await repo.list_page(cursor=0, size=50)

    assert [order_key(o.order_id) for o in page.orders] == scanned


@pytest.mark.asyncio
async def test_list_follows_cursor_until_all_orders_seen(repo, make_order):
    created = set(range(1, 121))
    for order_id in created:
        await repo.create(make_order(order_id))

    seen = set()
    cursor = 0
    while True:
        page = await repo.list_page(cursor=cursor, size=50)
        seen.update(o.order_id for o in page.orders)
        cursor = page.cursor
        if cursor == 0:
            break

    assert seen == created


@pytest.mark.asyncio
async def test_list_aborts_page_on_undecodable_record(repo, redis_client, make_order):
    await repo.create(make_order(1))
    await redis_client.set("order:2", "garbage")
    await redis_client.sadd(ORDERS_SET_KEY, "order:2")

    with pytest.raises(OrderDecodeError):
        await repo.list_page(cursor=0, size=50)


@pytest.mark.asyncio
async def test_list_skips_records_deleted_after_scan(repo, redis_client, make_order):
    await repo.create(make_order(1))
    scan = AsyncMock(return_value=(0, ["order:1", "order:404"]))

    with patch.object(redis_client, "sscan", scan):
        page = await repo.list_page(cursor=0, size=50)

    assert [o.order_id for o in page.orders] == [1]


@pytest.mark.asyncio
async def test_backend_down_raises_storage_unavailable(repo, redis_server, make_order):
    redis_server.connected = False

    with pytest.raises(StorageUnavailableError):
        await repo.find_by_id(1)
    with pytest.raises(StorageUnavailableError):
        await repo.create(make_order(1))
    with pytest.raises(StorageUnavailableError):
        await repo.list_page()


@pytest.mark.asyncio
async def test_concurrent_creates_of_same_id_admit_exactly_one(repo, redis_client, make_order):
    results = await asyncio.gather(
        *(repo.create(make_order(7, customer_id=uuid4())) for _ in range(5)),
        return_exceptions=True,
    )

    assert results.count(None) == 1
    assert sum(isinstance(r, OrderConflictError) for r in results) == 4
    assert await redis_client.smembers(ORDERS_SET_KEY) == {"order:7"}


@pytest.mark.asyncio
async def test_concurrent_deletes_of_same_id_admit_exactly_one(repo, redis_client, make_order):
    await repo.create(make_order(7))

    results = await asyncio.gather(
        *(repo.delete_by_id(7) for _ in range(3)),
        return_exceptions=True,
    )

    assert results.count(None) == 1
    assert sum(isinstance(r, OrderNotFoundError) for r in results) == 2
    assert await redis_client.exists("order:7") == 0
    assert await redis_client.scard(ORDERS_SET_KEY) == 0


@pytest.mark.asyncio
async def test_racing_create_and_delete_keep_record_and_index_paired(repo, redis_client, make_order):
    await repo.create(make_order(7))

    results = await asyncio.gather(
        repo.delete_by_id(7),
        repo.create(make_order(7, customer_id=uuid4())),
        return_exceptions=True,
    )

    assert results[0] is None
    assert results[1] is None or isinstance(results[1], OrderConflictError)
    record_exists = await redis_client.exists("order:7") == 1
    indexed = await redis_client.sismember(ORDERS_SET_KEY, "order:7")
    assert record_exists == bool(indexed)
