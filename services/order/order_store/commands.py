"""
Order Service: コマンドハンドラ (書き込み側)

注文の作成・ステータス更新・削除。
永続化は OrderRepository に委譲し、ここではビジネスルールだけを扱う。
"""

import logging
from collections.abc import Callable
from datetime import datetime, timezone
from uuid import UUID

from .lifecycle import apply_status, parse_status
from .models import LineItem, Order, new_order_id
from .repository import OrderRepository

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def create_order(
    repo: OrderRepository,
    customer_id: UUID,
    line_items: list[LineItem],
    *,
    id_factory: Callable[[], int] = new_order_id,
    clock: Callable[[], datetime] = utcnow,
) -> Order:
    """
    注文作成コマンド

    1. ランダムな order_id を生成
    2. created_at に現在時刻 (UTC) を設定
    3. リポジトリに登録

    ID が衝突した場合は再試行せず OrderConflictError をそのまま返す。
    """
    order = Order(
        order_id=id_factory(),
        customer_id=customer_id,
        line_items=line_items,
        created_at=clock(),
    )
    await repo.create(order)
    logger.info("Created order %d", order.order_id)
    return order


async def update_order_status(
    repo: OrderRepository,
    order_id: int,
    status: str,
    *,
    clock: Callable[[], datetime] = utcnow,
) -> Order:
    """
    ステータス更新コマンド

    ステータス値の検証 → 読み出し → 遷移ルール適用 → SET XX の順。
    未知のステータスはリポジトリに触れる前に InvalidStatusError で弾く。
    読み出しと書き込みは別々の呼び出しなので、その間に削除されると
    OrderNotFoundError になる。
    """
    target = parse_status(status)
    current = await repo.find_by_id(order_id)
    updated = apply_status(current, target, clock())
    await repo.update_by_id(updated)
    logger.info("Order %d marked %s", order_id, target.value)
    return updated


async def delete_order(repo: OrderRepository, order_id: int) -> None:
    await repo.delete_by_id(order_id)
    logger.info("Deleted order %d", order_id)
