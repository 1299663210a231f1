"""
Order Service: クエリハンドラ (読み取り側)
"""

from .models import Order, OrderPage
from .repository import OrderRepository

PAGE_SIZE = 50


async def get_order(repo: OrderRepository, order_id: int) -> Order:
    return await repo.find_by_id(order_id)


async def list_orders(repo: OrderRepository, cursor: int = 0) -> OrderPage:
    """固定ページサイズで一覧を1ページ取得する。次ページは返された cursor で。"""
    return await repo.list_page(cursor=cursor, size=PAGE_SIZE)
