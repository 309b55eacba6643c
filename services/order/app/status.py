"""
Order Service — 注文ステータスの状態遷移

    PENDING → CONFIRMED → SHIPPED → DELIVERED
       │          │          │
       └──────────┴──────────┴──▶ CANCELLED

DELIVERED と CANCELLED は終端状態。どの遷移要求もこの表で
検査してからコミットする。表にない遷移 (同じ状態への遷移を含む) は
IllegalTransition で拒否し、保存済みの注文は変更しない。
"""

from services.shared.errors import IllegalTransition
from services.shared.events import OrderStatus


class OrderStatusMachine:
    initial = OrderStatus.PENDING

    transitions: dict[OrderStatus, frozenset[OrderStatus]] = {
        OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
        OrderStatus.CONFIRMED: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
        OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
        OrderStatus.DELIVERED: frozenset(),
        OrderStatus.CANCELLED: frozenset(),
    }

    @classmethod
    def allowed_from(cls, status: OrderStatus) -> frozenset[OrderStatus]:
        return cls.transitions[status]

    @classmethod
    def is_terminal(cls, status: OrderStatus) -> bool:
        return not cls.transitions[status]

    @classmethod
    def can_transition(cls, current: OrderStatus, requested: OrderStatus) -> bool:
        return requested in cls.transitions[current]

    @classmethod
    def check(cls, order_id: str, current: OrderStatus, requested: OrderStatus) -> None:
        if not cls.can_transition(current, requested):
            raise IllegalTransition(order_id, current, requested)
