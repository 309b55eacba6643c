"""
Inventory Service — 在庫の反映 (OrderCreated コンシューマ)

order-created を購読し、注文明細ごとに在庫を減算する。

  - 明細ごとに独立した単位で処理する (1 明細の失敗は他の明細を止めない)
  - 商品が存在しない → ログを残して次の明細へ (注文は取り消さない)
  - 在庫 - 数量 < 0 → 減算しない (部分減算もキャンセル要求もしない)
  - 条件付き減算が拒否された → 減算時点で在庫不足として同様に扱う
  - ストアのエラー → ログとカウンタに残して次の明細へ (リトライ・デッドレターなし)

ハンドラは例外をチャネルに投げ返さない。チャネルから見ると
イベントは常に正常に消費されたことになる (ベストエフォート)。

注意: 冪等キーを持たないため、同じイベントが再配信されると
在庫は 2 回減算される。
"""

import logging
from collections import Counter, deque

from services.shared.errors import ReconciliationFailure
from services.shared.events import OrderCreated, OrderItemEvent
from services.shared.metrics import RECONCILIATION_LINES

from .catalog import CatalogStore

logger = logging.getLogger(__name__)

APPLIED = "applied"
PRODUCT_MISSING = "product_missing"
INSUFFICIENT_STOCK = "insufficient_stock"
FAILED = "failed"


class InventoryReconciler:
    def __init__(self, store: CatalogStore, max_recent_failures: int = 100) -> None:
        self.store = store
        self.outcomes: Counter[str] = Counter()
        self.failure_count = 0
        # 直近の失敗だけを保持する
        self.failures: deque[ReconciliationFailure] = deque(maxlen=max_recent_failures)

    async def on_order_created(self, event: OrderCreated) -> None:
        logger.info("Received OrderCreated for order ID: %s", event.order_id)
        for item in event.items:
            outcome = await self._reconcile_line(event.order_id, item)
            self.outcomes[outcome] += 1
            RECONCILIATION_LINES.labels(outcome=outcome).inc()

    async def _reconcile_line(self, order_id: str, item: OrderItemEvent) -> str:
        try:
            entry = await self.store.get(item.product_id)
            if entry is None:
                logger.warning(
                    "Product %s not found while reconciling order ID: %s",
                    item.product_id, order_id,
                )
                return PRODUCT_MISSING

            if entry.stock - item.quantity < 0:
                logger.warning(
                    "Insufficient stock for product %s (Order ID: %s). Current: %s, Requested: %s",
                    entry.name, order_id, entry.stock, item.quantity,
                )
                return INSUFFICIENT_STOCK

            if not await self.store.decrement_stock(item.product_id, item.quantity):
                logger.warning(
                    "Stock decrement refused for product %s (Order ID: %s). Requested: %s",
                    entry.name, order_id, item.quantity,
                )
                return INSUFFICIENT_STOCK
        except Exception as exc:
            failure = ReconciliationFailure(order_id, item.product_id, str(exc))
            self.failures.append(failure)
            self.failure_count += 1
            logger.exception("%s", failure)
            return FAILED

        logger.info(
            "Updated stock for product %s: %s -> %s (Order ID: %s)",
            entry.name, entry.stock, entry.stock - item.quantity, order_id,
        )
        return APPLIED

    def stats(self) -> dict:
        return {
            "outcomes": dict(self.outcomes),
            "failures": self.failure_count,
        }
