"""
Order Service — 注文集約 (Order Aggregate)

注文は明細 (OrderLine) を所有する。明細は注文作成時点の
カタログ情報 (商品名・単価) のスナップショットで、作成後は変更しない。
後からカタログの価格や名前が変わっても、作成済みの注文には影響しない。

合計金額は明細から常に再計算する: total = Σ(単価 × 数量)
"""

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal

from services.shared.events import CENTS, OrderCreated, OrderItemEvent, OrderStatus

# 1 明細あたりの数量上限 (合計金額が orders.total_amount の桁に収まる範囲)
MAX_LINE_QUANTITY = 10_000


@dataclass(frozen=True)
class OrderLine:
    product_id: int
    product_name: str
    quantity: int
    unit_price: Decimal
    id: str | None = None

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity


def order_total(lines) -> Decimal:
    total = sum((line.subtotal for line in lines), Decimal("0"))
    return total.quantize(CENTS)


@dataclass(frozen=True)
class Order:
    """
    注文集約。

    状態の変更は OrderStore 経由の update_status だけが行う。
    タイムスタンプはストアが挿入・更新時に明示的に設定する。
    """

    id: str
    buyer_id: int
    lines: tuple[OrderLine, ...]
    status: OrderStatus
    created_at: datetime
    updated_at: datetime
    version: int = 1

    @property
    def total_amount(self) -> Decimal:
        return order_total(self.lines)

    def with_status(self, status: OrderStatus, now: datetime) -> "Order":
        return replace(self, status=status, updated_at=now, version=self.version + 1)

    def to_created_event(self) -> OrderCreated:
        return OrderCreated(
            order_id=self.id,
            buyer_id=self.buyer_id,
            items=tuple(
                OrderItemEvent(
                    product_id=line.product_id,
                    product_name=line.product_name,
                    quantity=line.quantity,
                    price=line.unit_price,
                )
                for line in self.lines
            ),
            total_amount=self.total_amount,
            created_at=self.created_at,
        )
