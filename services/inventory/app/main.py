"""
Inventory Service — FastAPI エントリーポイント

order-created ストリームをバックグラウンドで購読し、
InventoryReconciler で商品カタログの在庫を減算する。
HTTP 側はヘルスチェックとメトリクスのみ。

┌──────────────┐  order-created   ┌───────────────────┐
│ Order Service │ ── Redis ──────▶ │ Inventory Service │
│              │   Streams        │ (Reconciler)      │
└──────────────┘                   └────────┬──────────┘
                                            │ 条件付き UPDATE
                                   ┌────────▼──────────┐
                                   │  Product DB       │
                                   └───────────────────┘
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from services.shared.events import ORDER_CREATED_TOPIC
from services.shared.logging_setup import setup_logging
from services.shared.metrics import metrics_app
from services.shared.redis_streams import RedisStreamsChannel

from .catalog import SqlCatalogStore
from .reconciler import InventoryReconciler

DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite+aiosqlite:///./products.db")
REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379")
CONSUMER_GROUP = os.environ.get("CONSUMER_GROUP", "product-service-group")
# 再起動後に自分の未 ACK エントリを読み直すには固定の名前を与える
CONSUMER_NAME = os.environ.get("CONSUMER_NAME") or None
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

engine = create_async_engine(DATABASE_URL, echo=False)
async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
channel: RedisStreamsChannel | None = None
reconciler: InventoryReconciler | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """起動時にコンシューマをバックグラウンドタスクとして開始する。"""
    global channel, reconciler
    setup_logging(LOG_LEVEL)
    reconciler = InventoryReconciler(SqlCatalogStore(async_session))
    channel = RedisStreamsChannel(REDIS_URL, consumer_name=CONSUMER_NAME)
    await channel.subscribe(ORDER_CREATED_TOPIC, CONSUMER_GROUP, reconciler.on_order_created)
    await channel.start()
    yield
    await channel.stop()
    await engine.dispose()


app = FastAPI(title="Inventory Service", lifespan=lifespan)
app.mount("/metrics", metrics_app())


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "service": "inventory-service",
        "channel": channel.stats() if channel else {},
        "reconciliation": reconciler.stats() if reconciler else {},
    }
