"""
Order Service: FastAPI エントリーポイント

HTTP リクエストをコマンド / クエリ関数に振り分け、
ドメイン例外を HTTP ステータスに変換する。

    POST   /orders          → commands.create_order       (201)
    GET    /orders?cursor=  → queries.list_orders
    GET    /orders/{id}     → queries.get_order
    PUT    /orders/{id}     → commands.update_order_status
    DELETE /orders/{id}     → commands.delete_order       (204)

Redis クライアントはプロセス全体で1つ。lifespan で接続・切断し、
app.state 経由でリポジトリに渡す (テストでは外から注入する)。
"""

import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Annotated
from uuid import UUID

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends, FastAPI, Path, Query, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from redis.exceptions import RedisError

from . import commands, queries
from .config import Settings
from .errors import (
    InvalidInputError,
    OrderConflictError,
    OrderNotFoundError,
    OrderStoreError,
    StorageUnavailableError,
)
from .models import MAX_ORDER_ID, LineItem, Order
from .repository import OrderRepository

logger = logging.getLogger(__name__)

OrderId = Annotated[int, Path(ge=0, le=MAX_ORDER_ID)]


# ── Request / Response Models ────────────────────

class CreateOrderRequest(BaseModel):
    customer_id: UUID
    line_items: list[LineItem] = Field(default_factory=list)


class UpdateStatusRequest(BaseModel):
    status: str


class OrderListResponse(BaseModel):
    items: list[Order]
    next: int | None = None


def get_repository(request: Request) -> OrderRepository:
    return OrderRepository(request.app.state.redis)


Repo = Annotated[OrderRepository, Depends(get_repository)]

router = APIRouter()


# ── Command Endpoints ────────────────────────────

@router.post("/orders", status_code=201, response_model=Order, response_model_exclude_none=True)
async def create_order(req: CreateOrderRequest, repo: Repo):
    """注文作成"""
    return await commands.create_order(repo, req.customer_id, req.line_items)


@router.put("/orders/{order_id}", response_model=Order, response_model_exclude_none=True)
async def update_order(order_id: OrderId, req: UpdateStatusRequest, repo: Repo):
    """ステータス更新 (shipped / completed)"""
    return await commands.update_order_status(repo, order_id, req.status)


@router.delete("/orders/{order_id}", status_code=204)
async def delete_order(order_id: OrderId, repo: Repo):
    await commands.delete_order(repo, order_id)
    return Response(status_code=204)


# ── Query Endpoints ──────────────────────────────

@router.get("/orders", response_model=OrderListResponse, response_model_exclude_none=True)
async def list_orders(
    repo: Repo,
    cursor: Annotated[int, Query(ge=0, le=MAX_ORDER_ID)] = 0,
):
    """注文一覧。next が無ければ最後のページ。"""
    page = await queries.list_orders(repo, cursor)
    return OrderListResponse(items=page.orders, next=page.cursor or None)


@router.get("/orders/{order_id}", response_model=Order, response_model_exclude_none=True)
async def get_order(order_id: OrderId, repo: Repo):
    return await queries.get_order(repo, order_id)


@router.get("/health")
async def health():
    return {"status": "ok", "service": "order-service"}


# ── Error mapping ────────────────────────────────

async def _order_store_error(request: Request, exc: OrderStoreError) -> JSONResponse:
    if isinstance(exc, OrderNotFoundError):
        return JSONResponse(status_code=404, content={"detail": "Order not found"})
    if isinstance(exc, OrderConflictError):
        return JSONResponse(status_code=409, content={"detail": "Order already exists"})
    if isinstance(exc, InvalidInputError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})
    # ストレージ・デコード失敗はリポジトリでログ済み
    return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


async def _log_request(request: Request, call_next):
    rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    started = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
    finally:
        logger.info(
            "%s %s %d %.1fms request_id=%s",
            request.method,
            request.url.path,
            status_code,
            (time.perf_counter() - started) * 1000,
            rid,
        )
    response.headers["X-Request-ID"] = rid
    return response


# ── Application factory ──────────────────────────

def create_app(settings: Settings | None = None, redis: aioredis.Redis | None = None) -> FastAPI:
    """
    アプリケーションを組み立てる。

    redis を渡した場合はそのクライアントを使い、終了時にも閉じない。
    渡さない場合は lifespan で接続し、PING が通らなければ起動を失敗させる。
    """
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if redis is not None:
            yield
            return

        client = aioredis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_timeout=settings.redis_timeout,
            socket_connect_timeout=settings.redis_timeout,
        )
        try:
            await client.ping()
        except RedisError as e:
            await client.aclose()
            logger.error("Failed to connect to redis: %s", e)
            raise StorageUnavailableError("failed to connect to redis") from e

        app.state.redis = client
        logger.info("Connected to redis")
        try:
            yield
        finally:
            await client.aclose()
            logger.info("Redis connection closed")

    app = FastAPI(title="Order Service", lifespan=lifespan)
    if redis is not None:
        app.state.redis = redis

    app.include_router(router)
    app.add_exception_handler(OrderStoreError, _order_store_error)
    app.add_exception_handler(RequestValidationError, _validation_error)
    app.middleware("http")(_log_request)
    return app


app = create_app()
