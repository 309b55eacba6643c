"""
Shared — イベント定義とワイヤ契約

サービス間で流れるドメインイベント。イベントは過去形で命名し、
不変(immutable)として扱う。コンシューマが同期呼び出しなしで
処理できるだけのデータを載せる。

JSON 上のキーは camelCase (orderId, totalAmount ...)。
"""

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Annotated

from pydantic import BaseModel, BeforeValidator, ConfigDict, PlainSerializer
from pydantic.alias_generators import to_camel

ORDER_CREATED_TOPIC = "order-created"
ORDER_STATUS_CHANGED_TOPIC = "order-status-changed"

CENTS = Decimal("0.01")


def to_money(value) -> Decimal:
    """金額を小数点以下 2 桁の Decimal に揃える。float は文字列経由で変換する。"""
    if isinstance(value, float):
        value = str(value)
    try:
        return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)
    except (InvalidOperation, TypeError) as e:
        raise ValueError(f"Invalid amount: {value!r}") from e


# JSON では数値として出力する (元サービスの BigDecimal と同じ形)
Money = Annotated[
    Decimal,
    BeforeValidator(to_money),
    PlainSerializer(float, return_type=float, when_used="json"),
]


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class OrderItemEvent(WireModel):
    """注文明細のスナップショット"""
    product_id: int
    product_name: str
    quantity: int
    price: Money


class OrderCreated(WireModel):
    """注文が作成された"""
    order_id: str
    buyer_id: int
    items: tuple[OrderItemEvent, ...]
    total_amount: Money
    created_at: datetime


class OrderStatusChanged(WireModel):
    """注文ステータスが変更された"""
    order_id: str
    buyer_id: int
    previous_status: OrderStatus
    new_status: OrderStatus
    changed_at: datetime


# トピック名 → イベントモデル
TOPIC_SCHEMAS: dict[str, type[WireModel]] = {
    ORDER_CREATED_TOPIC: OrderCreated,
    ORDER_STATUS_CHANGED_TOPIC: OrderStatusChanged,
}


def encode_event(event: WireModel) -> str:
    return event.model_dump_json(by_alias=True)


def decode_event(topic: str, data: str | bytes) -> WireModel:
    try:
        model = TOPIC_SCHEMAS[topic]
    except KeyError:
        raise ValueError(f"No event schema registered for topic {topic!r}") from None
    return model.model_validate_json(data)
