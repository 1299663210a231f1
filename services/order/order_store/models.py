"""
Order Service: データモデル

Redis には Order を JSON 文字列として保存する。
未設定のタイムスタンプ (shipped_at / completed_at) は JSON から省く。

キー空間:
    order:<order_id>  → Order の JSON
    orders            → 現在有効な order:<id> キーの集合 (Set)
"""

import secrets
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

MAX_ORDER_ID = 2**64 - 1
ORDERS_SET_KEY = "orders"


class LineItem(BaseModel):
    item_id: UUID
    quantity: int = Field(ge=0)
    price: int = Field(ge=0)


class Order(BaseModel):
    """注文。order_id と created_at は作成時に決まり、以後変わらない。"""
    order_id: int = Field(ge=0, le=MAX_ORDER_ID)
    customer_id: UUID
    line_items: list[LineItem] = Field(default_factory=list)
    created_at: datetime
    shipped_at: datetime | None = None
    completed_at: datetime | None = None


@dataclass
class OrderPage:
    """一覧取得の1ページ分。cursor が 0 ならスキャン完了。"""
    orders: list[Order] = field(default_factory=list)
    cursor: int = 0


def order_key(order_id: int) -> str:
    return f"order:{order_id}"


def new_order_id() -> int:
    """ランダムな 64bit ID。一意性は保証しない (リポジトリの条件付き挿入で検出する)。"""
    return secrets.randbits(64)
