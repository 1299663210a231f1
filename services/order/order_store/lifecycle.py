"""
Order Service: 注文ステータスの状態遷移

状態は (shipped_at, completed_at) の組から決まる:
    CREATED   : どちらも未設定
    SHIPPED   : shipped_at のみ設定
    COMPLETED : 両方設定 (終端)

    CREATED ──ship──▶ SHIPPED ──complete──▶ COMPLETED

タイムスタンプは一度設定したら二度と変更・解除しない。
"""

from datetime import datetime
from enum import Enum

from .errors import IllegalTransitionError, InvalidStatusError
from .models import Order


class OrderStatus(str, Enum):
    """更新リクエストで指定できるステータス"""
    SHIPPED = "shipped"
    COMPLETED = "completed"


class OrderState(str, Enum):
    CREATED = "created"
    SHIPPED = "shipped"
    COMPLETED = "completed"


def state_of(order: Order) -> OrderState:
    if order.completed_at is not None:
        return OrderState.COMPLETED
    if order.shipped_at is not None:
        return OrderState.SHIPPED
    return OrderState.CREATED


def parse_status(value: str | OrderStatus) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        raise InvalidStatusError(str(value)) from None


# 現在の状態 → 指定ステータスで遷移できる次の状態
TRANSITIONS: dict[OrderState, dict[OrderStatus, OrderState]] = {
    OrderState.CREATED: {OrderStatus.SHIPPED: OrderState.SHIPPED},
    OrderState.SHIPPED: {OrderStatus.COMPLETED: OrderState.COMPLETED},
    OrderState.COMPLETED: {},
}


def apply_status(order: Order, status: str | OrderStatus, now: datetime) -> Order:
    """
    ステータス更新を適用した新しい Order を返す。元の order は変更しない。

    ルール違反は IllegalTransitionError、未知のステータスは
    InvalidStatusError を投げる。
    """
    target = parse_status(status)
    current = state_of(order)

    if target not in TRANSITIONS[current]:
        raise IllegalTransitionError(
            f"order {order.order_id} cannot be marked {target.value} while {current.value}"
        )

    if target is OrderStatus.SHIPPED:
        return order.model_copy(update={"shipped_at": now})
    return order.model_copy(update={"completed_at": now})
