"""
Order Service: Redis リポジトリ

注文レコード (order:<id>) と全注文のインデックス集合 (orders) を
常にペアで保つ。作成・削除は WATCH + MULTI/EXEC のトランザクションで
2つのキーを同時に変更するため、片方だけが存在する瞬間はない。

    create  : WATCH order:<id> → 存在すれば Conflict → MULTI SET NX + SADD → EXEC
    delete  : WATCH order:<id> → 無ければ NotFound → MULTI DEL + SREM → EXEC
    update  : SET XX (存在するときだけ上書き)。並行削除されていれば NotFound
    list    : SSCAN でキーを取得 → MGET でまとめて読み出す

プロセス内に共有状態は持たない。調停はすべて Redis 側の原子性に任せる。
"""

import logging

import redis.asyncio as aioredis
from pydantic import ValidationError
from redis.asyncio.client import Pipeline
from redis.exceptions import RedisError

from .errors import (
    OrderConflictError,
    OrderDecodeError,
    OrderNotFoundError,
    StorageUnavailableError,
)
from .models import ORDERS_SET_KEY, Order, OrderPage, order_key

logger = logging.getLogger(__name__)


def _storage_error(action: str, exc: RedisError) -> StorageUnavailableError:
    logger.error("Redis %s failed: %s", action, exc)
    return StorageUnavailableError(f"redis {action} failed")


def _decode(key: str, raw: str) -> Order:
    try:
        return Order.model_validate_json(raw)
    except ValidationError:
        logger.exception("Stored order at %s is not decodable", key)
        raise OrderDecodeError(key) from None


class OrderRepository:
    """Redis 上の注文ストア。クライアントは呼び出し側が所有し、注入する。"""

    def __init__(self, redis: aioredis.Redis):
        self.redis = redis

    async def create(self, order: Order) -> None:
        """
        注文を登録する。

        同じキーが既に存在すれば OrderConflictError。その場合レコードも
        インデックスも一切変更しない。
        """
        key = order_key(order.order_id)
        data = order.model_dump_json(exclude_none=True)

        async def _insert(pipe: Pipeline) -> None:
            if await pipe.exists(key):
                raise OrderConflictError(order.order_id)
            pipe.multi()
            pipe.set(key, data, nx=True)
            pipe.sadd(ORDERS_SET_KEY, key)

        try:
            await self.redis.transaction(_insert, key)
        except RedisError as e:
            raise _storage_error("create", e) from e

    async def find_by_id(self, order_id: int) -> Order:
        key = order_key(order_id)
        try:
            raw = await self.redis.get(key)
        except RedisError as e:
            raise _storage_error("get", e) from e

        if raw is None:
            raise OrderNotFoundError(order_id)
        return _decode(key, raw)

    async def update_by_id(self, order: Order) -> None:
        """
        既存レコードを丸ごと置き換える (SET XX)。

        読み出しから書き込みまでの間に削除されていた場合は
        新規作成せず OrderNotFoundError を投げる。
        """
        key = order_key(order.order_id)
        data = order.model_dump_json(exclude_none=True)
        try:
            written = await self.redis.set(key, data, xx=True)
        except RedisError as e:
            raise _storage_error("update", e) from e

        if not written:
            raise OrderNotFoundError(order.order_id)

    async def delete_by_id(self, order_id: int) -> None:
        key = order_key(order_id)

        async def _remove(pipe: Pipeline) -> None:
            if not await pipe.exists(key):
                raise OrderNotFoundError(order_id)
            pipe.multi()
            pipe.delete(key)
            pipe.srem(ORDERS_SET_KEY, key)

        try:
            await self.redis.transaction(_remove, key)
        except RedisError as e:
            raise _storage_error("delete", e) from e

    async def list_page(self, cursor: int = 0, size: int = 50) -> OrderPage:
        """
        インデックス集合を SSCAN で1ステップ進め、見つかった注文を返す。

        SSCAN の COUNT はヒントに過ぎないため、返る件数は size より
        少ないことも多いことも、0 件で cursor が非 0 のこともある。
        並び順はスキャンが返した順。
        """
        try:
            next_cursor, keys = await self.redis.sscan(ORDERS_SET_KEY, cursor=cursor, count=size)
        except RedisError as e:
            raise _storage_error("scan", e) from e

        if not keys:
            return OrderPage(orders=[], cursor=next_cursor)

        try:
            values = await self.redis.mget(keys)
        except RedisError as e:
            raise _storage_error("mget", e) from e

        orders = []
        for key, raw in zip(keys, values):
            if raw is None:
                # スキャン後に削除された
                logger.debug("Order %s vanished between scan and fetch", key)
                continue
            orders.append(_decode(key, raw))

        return OrderPage(orders=orders, cursor=next_cursor)
