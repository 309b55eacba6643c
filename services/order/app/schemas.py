"""
Order Service — Request / Response モデル

JSON のキーは camelCase。
  POST /orders  {buyerId, lines:[{productId, quantity}]}
  (元サービスの {userId, items:[...]} も受け付ける)
"""

from datetime import datetime

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from services.shared.events import Money, OrderStatus

from .aggregate import MAX_LINE_QUANTITY, Order


class OrderLineRequest(BaseModel):
    product_id: int = Field(validation_alias=AliasChoices("productId", "product_id"))
    quantity: int = Field(ge=1, le=MAX_LINE_QUANTITY)


class CreateOrderRequest(BaseModel):
    buyer_id: int = Field(
        validation_alias=AliasChoices("buyerId", "userId", "buyer_id")
    )
    lines: list[OrderLineRequest] = Field(
        min_length=1, validation_alias=AliasChoices("lines", "items")
    )


class ResponseModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OrderItemResponse(ResponseModel):
    id: str
    product_id: int
    product_name: str
    quantity: int
    price: Money


class OrderResponse(ResponseModel):
    id: str
    buyer_id: int
    items: list[OrderItemResponse]
    total_amount: Money
    status: OrderStatus
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_order(cls, order: Order) -> "OrderResponse":
        return cls(
            id=order.id,
            buyer_id=order.buyer_id,
            items=[
                OrderItemResponse(
                    id=line.id,
                    product_id=line.product_id,
                    product_name=line.product_name,
                    quantity=line.quantity,
                    price=line.unit_price,
                )
                for line in order.lines
            ],
            total_amount=order.total_amount,
            status=order.status,
            created_at=order.created_at,
            updated_at=order.updated_at,
        )


class ErrorResponse(BaseModel):
    message: str
    status: str
