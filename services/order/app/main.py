"""
Order Service — FastAPI エントリーポイント

注文の作成・参照・ステータス更新を提供する。
作成時はユーザーサービスと商品サービスに同期で問い合わせ、
保存後に OrderCreated をイベントチャネル (Redis Streams) に発行する。

エラーはすべて {message, status} 形式の 400 で返す (注文が見つからない場合も 400)。
"""

import os
from contextlib import asynccontextmanager

import httpx
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from services.shared.errors import OrderServiceError
from services.shared.events import OrderStatus
from services.shared.logging_setup import setup_logging
from services.shared.metrics import metrics_app
from services.shared.redis_streams import RedisStreamsChannel

from .clients import HttpValidationClient
from .orchestrator import OrderOrchestrator
from .schemas import CreateOrderRequest, ErrorResponse, OrderResponse
from .store import SqlOrderStore

DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite+aiosqlite:///./orders.db")
REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379")
USER_SERVICE_URL = os.environ.get("USER_SERVICE_URL", "http://localhost:8081")
PRODUCT_SERVICE_URL = os.environ.get("PRODUCT_SERVICE_URL", "http://localhost:8082")
HTTP_TIMEOUT_SECONDS = float(os.environ.get("HTTP_TIMEOUT_SECONDS", "5.0"))
PUBLISH_TIMEOUT_SECONDS = float(os.environ.get("PUBLISH_TIMEOUT_SECONDS", "2.0"))
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

engine = create_async_engine(DATABASE_URL, echo=False)
async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
orchestrator: OrderOrchestrator | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    global orchestrator
    setup_logging(LOG_LEVEL)
    await SqlOrderStore.create_schema(engine)

    http_client = httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS)
    channel = RedisStreamsChannel(REDIS_URL, publish_timeout=PUBLISH_TIMEOUT_SECONDS)
    await channel.start()
    orchestrator = OrderOrchestrator(
        SqlOrderStore(async_session),
        HttpValidationClient(http_client, USER_SERVICE_URL, PRODUCT_SERVICE_URL),
        channel,
    )
    yield
    await channel.stop()
    await http_client.aclose()
    await engine.dispose()


app = FastAPI(title="Order Service", lifespan=lifespan)
app.mount("/metrics", metrics_app())


def get_orchestrator() -> OrderOrchestrator:
    if orchestrator is None:
        raise RuntimeError("Order service is not started")
    return orchestrator


# ── Error Handlers ───────────────────────────────


def _error(message: str, status_code: int = 400) -> JSONResponse:
    body = ErrorResponse(message=message, status=str(status_code))
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.exception_handler(OrderServiceError)
async def handle_order_service_error(_request: Request, exc: OrderServiceError):
    return _error(exc.message, exc.status_code)


@app.exception_handler(RequestValidationError)
async def handle_validation_error(_request: Request, exc: RequestValidationError):
    details = "; ".join(
        f"{'.'.join(str(part) for part in err['loc'][1:]) or err['loc'][0]}: {err['msg']}"
        for err in exc.errors()
    )
    return _error(f"Invalid request: {details}")


# ── Endpoints ────────────────────────────────────


@app.post("/orders", status_code=201, response_model=OrderResponse)
async def create_order(
    req: CreateOrderRequest,
    orch: OrderOrchestrator = Depends(get_orchestrator),
):
    """注文作成"""
    order = await orch.create_order(req.buyer_id, req.lines)
    return OrderResponse.from_order(order)


@app.get("/orders", response_model=list[OrderResponse])
async def list_orders(orch: OrderOrchestrator = Depends(get_orchestrator)):
    """全注文を取得"""
    return [OrderResponse.from_order(o) for o in await orch.list_orders()]


@app.get("/orders/buyer/{buyer_id}", response_model=list[OrderResponse])
@app.get("/orders/user/{buyer_id}", response_model=list[OrderResponse], include_in_schema=False)
async def list_orders_by_buyer(
    buyer_id: int,
    orch: OrderOrchestrator = Depends(get_orchestrator),
):
    """購入者ごとの注文を取得"""
    return [OrderResponse.from_order(o) for o in await orch.list_orders_by_buyer(buyer_id)]


@app.get("/orders/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str, orch: OrderOrchestrator = Depends(get_orchestrator)):
    """指定注文を取得"""
    return OrderResponse.from_order(await orch.get_order(order_id))


@app.put("/orders/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: str,
    status: OrderStatus,
    orch: OrderOrchestrator = Depends(get_orchestrator),
):
    """注文ステータスを更新"""
    return OrderResponse.from_order(await orch.update_status(order_id, status))


@app.get("/health")
async def health(orch: OrderOrchestrator = Depends(get_orchestrator)):
    return {
        "status": "ok",
        "service": "order-service",
        "channel": orch.channel.stats(),
    }
