"""
Order Service — 注文ストア

注文集約を丸ごと 1 トランザクションで保存する (注文行 + 全明細行)。
ステータス更新は version 列による楽観的ロックで集約単位の
read-modify-write をアトミックにする。競合したら読み直して再試行する。

created_at / updated_at はエンティティのフックではなく、
ストアが挿入・更新の時点で明示的に設定する。
"""

import asyncio
from collections.abc import Callable, Sequence
from dataclasses import replace
from datetime import datetime, timezone
from typing import Protocol
from uuid import uuid4

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    select,
    update,
)
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.orm import sessionmaker

from services.shared.errors import ConcurrentModification
from services.shared.events import OrderStatus, to_money

from .aggregate import Order, OrderLine

StatusDecision = Callable[[Order], OrderStatus]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite は tzinfo を保持しない
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class OrderStore(Protocol):
    async def add(
        self, buyer_id: int, lines: Sequence[OrderLine], status: OrderStatus
    ) -> Order: ...

    async def get(self, order_id: str) -> Order | None: ...

    async def list_all(self) -> list[Order]: ...

    async def list_by_buyer(self, buyer_id: int) -> list[Order]: ...

    async def update_status(
        self, order_id: str, decide: StatusDecision
    ) -> tuple[Order, Order] | None: ...


def _new_order(buyer_id: int, lines: Sequence[OrderLine], status: OrderStatus) -> Order:
    now = utcnow()
    return Order(
        id=str(uuid4()),
        buyer_id=buyer_id,
        lines=tuple(replace(line, id=str(uuid4())) for line in lines),
        status=status,
        created_at=now,
        updated_at=now,
    )


# ── In-memory ────────────────────────────────────


class InMemoryOrderStore:
    """dict ベースのストア。挿入順で列挙する。"""

    def __init__(self) -> None:
        self._orders: dict[str, Order] = {}
        self._lock = asyncio.Lock()

    async def add(
        self, buyer_id: int, lines: Sequence[OrderLine], status: OrderStatus
    ) -> Order:
        order = _new_order(buyer_id, lines, status)
        async with self._lock:
            self._orders[order.id] = order
        return order

    async def get(self, order_id: str) -> Order | None:
        return self._orders.get(order_id)

    async def list_all(self) -> list[Order]:
        return list(self._orders.values())

    async def list_by_buyer(self, buyer_id: int) -> list[Order]:
        return [o for o in self._orders.values() if o.buyer_id == buyer_id]

    async def update_status(
        self, order_id: str, decide: StatusDecision
    ) -> tuple[Order, Order] | None:
        async with self._lock:
            current = self._orders.get(order_id)
            if current is None:
                return None
            updated = current.with_status(decide(current), utcnow())
            self._orders[order_id] = updated
            return current, updated

    def __len__(self) -> int:
        return len(self._orders)


# ── SQLAlchemy ───────────────────────────────────

metadata = MetaData()

orders_table = Table(
    "orders",
    metadata,
    Column("seq", Integer, primary_key=True, autoincrement=True),
    Column("id", String(36), unique=True, nullable=False),
    Column("buyer_id", BigInteger, nullable=False, index=True),
    Column("total_amount", Numeric(19, 2), nullable=False),
    Column("status", String(16), nullable=False),
    Column("version", Integer, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)

order_items_table = Table(
    "order_items",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("order_id", String(36), ForeignKey("orders.id"), nullable=False, index=True),
    Column("position", Integer, nullable=False),
    Column("product_id", BigInteger, nullable=False),
    Column("product_name", String(255), nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("price", Numeric(10, 2), nullable=False),
)


class SqlOrderStore:
    def __init__(self, session_factory: sessionmaker, max_retries: int = 5) -> None:
        self.session_factory = session_factory
        self.max_retries = max_retries

    @staticmethod
    async def create_schema(engine: AsyncEngine) -> None:
        async with engine.begin() as conn:
            await conn.run_sync(metadata.create_all)

    async def add(
        self, buyer_id: int, lines: Sequence[OrderLine], status: OrderStatus
    ) -> Order:
        order = _new_order(buyer_id, lines, status)
        async with self.session_factory() as session:
            async with session.begin():
                await session.execute(
                    orders_table.insert().values(
                        id=order.id,
                        buyer_id=order.buyer_id,
                        total_amount=order.total_amount,
                        status=order.status.value,
                        version=order.version,
                        created_at=order.created_at,
                        updated_at=order.updated_at,
                    )
                )
                await session.execute(
                    order_items_table.insert(),
                    [
                        {
                            "id": line.id,
                            "order_id": order.id,
                            "position": position,
                            "product_id": line.product_id,
                            "product_name": line.product_name,
                            "quantity": line.quantity,
                            "price": line.unit_price,
                        }
                        for position, line in enumerate(order.lines)
                    ],
                )
        return order

    async def get(self, order_id: str) -> Order | None:
        orders = await self._load(orders_table.c.id == order_id)
        return orders[0] if orders else None

    async def list_all(self) -> list[Order]:
        return await self._load()

    async def list_by_buyer(self, buyer_id: int) -> list[Order]:
        return await self._load(orders_table.c.buyer_id == buyer_id)

    async def update_status(
        self, order_id: str, decide: StatusDecision
    ) -> tuple[Order, Order] | None:
        for _attempt in range(self.max_retries):
            current = await self.get(order_id)
            if current is None:
                return None
            updated = current.with_status(decide(current), utcnow())
            async with self.session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        update(orders_table)
                        .where(
                            orders_table.c.id == order_id,
                            orders_table.c.version == current.version,
                        )
                        .values(
                            status=updated.status.value,
                            updated_at=updated.updated_at,
                            version=updated.version,
                        )
                    )
            if result.rowcount == 1:
                return current, updated
        raise ConcurrentModification(order_id)

    async def _load(self, *criteria) -> list[Order]:
        async with self.session_factory() as session:
            stmt = select(orders_table).order_by(orders_table.c.seq)
            if criteria:
                stmt = stmt.where(*criteria)
            rows = (await session.execute(stmt)).fetchall()
            if not rows:
                return []
            ids = [row.id for row in rows]
            item_rows = (
                await session.execute(
                    select(order_items_table)
                    .where(order_items_table.c.order_id.in_(ids))
                    .order_by(order_items_table.c.order_id, order_items_table.c.position)
                )
            ).fetchall()

        lines: dict[str, list[OrderLine]] = {order_id: [] for order_id in ids}
        for row in item_rows:
            lines[row.order_id].append(
                OrderLine(
                    id=row.id,
                    product_id=row.product_id,
                    product_name=row.product_name,
                    quantity=row.quantity,
                    unit_price=to_money(row.price),
                )
            )
        return [
            Order(
                id=row.id,
                buyer_id=row.buyer_id,
                lines=tuple(lines[row.id]),
                status=OrderStatus(row.status),
                created_at=_as_utc(row.created_at),
                updated_at=_as_utc(row.updated_at),
                version=row.version,
            )
            for row in rows
        ]
