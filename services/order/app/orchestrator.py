"""
Order Service — 注文オーケストレーター

注文作成のフロー:
  ┌──────────────────────────────────────────────────────────────┐
  │  1. ユーザーディレクトリで購入者を確認 (失敗 → BuyerNotFound)   │
  │  2. 明細ごとに商品カタログを確認 (リクエスト順・逐次)           │
  │     ├─ 存在しない → ProductNotFound                           │
  │     └─ 在庫 < 数量 → InsufficientStock                         │
  │  3. スナップショットから明細を作り、合計を計算して一括保存       │
  │  4. OrderCreated を発行 (orderId をキーに)                     │
  └──────────────────────────────────────────────────────────────┘

検証はすべて永続化の前に終わらせる。途中で失敗したら何も保存しない。

イベント発行の失敗は注文を取り消さず、呼び出しも失敗させない。
ログとメトリクスに残すだけ。その注文の在庫は反映されないままになるので、
運用側で検知して再発行する必要がある。

在庫の引き当てはここでは行わない。在庫サービスが OrderCreated を
受け取って非同期に減算する。
"""

import logging
from collections.abc import Sequence
from typing import Protocol

from services.shared.channel import EventChannel
from services.shared.errors import InsufficientStock, OrderNotFound, ValidationFailure
from services.shared.events import (
    ORDER_CREATED_TOPIC,
    ORDER_STATUS_CHANGED_TOPIC,
    OrderStatus,
    OrderStatusChanged,
    WireModel,
)
from services.shared.metrics import ORDER_STATUS_CHANGES, ORDERS_CREATED

from .aggregate import MAX_LINE_QUANTITY, Order, OrderLine
from .clients import ValidationClient
from .status import OrderStatusMachine
from .store import OrderStore

logger = logging.getLogger(__name__)


class LineRequest(Protocol):
    product_id: int
    quantity: int


class OrderOrchestrator:
    def __init__(
        self,
        store: OrderStore,
        validation: ValidationClient,
        channel: EventChannel,
    ) -> None:
        self.store = store
        self.validation = validation
        self.channel = channel

    # ── Commands ─────────────────────────────────

    async def create_order(self, buyer_id: int, lines: Sequence[LineRequest]) -> Order:
        """注文作成コマンド"""
        if buyer_id is None:
            raise ValidationFailure("User ID is required")
        if not lines:
            raise ValidationFailure("Order must contain at least one item")
        for line in lines:
            if line.product_id is None:
                raise ValidationFailure("Product ID is required")
            if line.quantity is None or line.quantity < 1:
                raise ValidationFailure("Quantity must be at least 1")
            if line.quantity > MAX_LINE_QUANTITY:
                raise ValidationFailure(f"Quantity must be at most {MAX_LINE_QUANTITY}")

        logger.info("Creating order for user ID: %s", buyer_id)

        # 1. 購入者の確認
        buyer = await self.validation.get_buyer(buyer_id)
        logger.debug("User validated: %s", buyer.name)

        # 2. 商品と在庫の確認 (最初の失敗で全体を中止)
        snapshots: list[OrderLine] = []
        for line in lines:
            product = await self.validation.get_product(line.product_id)
            logger.debug("Product validated: %s - Price: %s", product.name, product.price)
            if product.stock < line.quantity:
                raise InsufficientStock(product.name, product.stock, line.quantity)
            snapshots.append(
                OrderLine(
                    product_id=product.id,
                    product_name=product.name,
                    quantity=line.quantity,
                    unit_price=product.price,
                )
            )

        # 3. 集約を一括保存
        order = await self.store.add(buyer_id, snapshots, OrderStatusMachine.initial)
        ORDERS_CREATED.inc()
        logger.info("Order created successfully with ID: %s", order.id)

        # 4. イベント発行 (結果はレスポンスに影響しない)
        await self._publish(ORDER_CREATED_TOPIC, order.id, order.to_created_event())
        return order

    async def update_status(self, order_id: str, new_status: OrderStatus) -> Order:
        """注文ステータス更新コマンド"""
        logger.info("Updating order %s status to %s", order_id, new_status.value)

        def decide(current: Order) -> OrderStatus:
            OrderStatusMachine.check(current.id, current.status, new_status)
            return new_status

        result = await self.store.update_status(order_id, decide)
        if result is None:
            raise OrderNotFound(order_id)
        previous, updated = result

        ORDER_STATUS_CHANGES.labels(
            previous=previous.status.value, new=updated.status.value
        ).inc()
        logger.info(
            "Order %s status updated from %s to %s",
            order_id, previous.status.value, updated.status.value,
        )

        await self._publish(
            ORDER_STATUS_CHANGED_TOPIC,
            updated.id,
            OrderStatusChanged(
                order_id=updated.id,
                buyer_id=updated.buyer_id,
                previous_status=previous.status,
                new_status=updated.status,
                changed_at=updated.updated_at,
            ),
        )
        return updated

    # ── Queries ──────────────────────────────────

    async def get_order(self, order_id: str) -> Order:
        order = await self.store.get(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        return order

    async def list_orders(self) -> list[Order]:
        return await self.store.list_all()

    async def list_orders_by_buyer(self, buyer_id: int) -> list[Order]:
        return await self.store.list_by_buyer(buyer_id)

    # ── Events ───────────────────────────────────

    async def _publish(self, topic: str, key: str, event: WireModel) -> bool:
        try:
            await self.channel.publish(topic, key, event)
        except Exception:
            logger.exception(
                "Failed to publish %s for order ID: %s", type(event).__name__, key
            )
            return False
        logger.info("Published %s for order ID: %s", type(event).__name__, key)
        return True
