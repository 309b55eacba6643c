"""
Inventory Service — 商品カタログストアへのアクセス

商品レコード自体の管理 (CRUD) は商品サービスの責務。ここで必要なのは
在庫の読み取りと、下限を守るアトミックな減算だけ。

  UPDATE products
  SET stock_quantity = stock_quantity - :qty
  WHERE id = :id AND stock_quantity >= :qty

注文作成時の在庫チェックと在庫減算は別々の時点で行われ、
両者を結ぶロックはない。同時に受け付けた複数の注文が在庫を
マイナスにしないよう、減算は必ずこの条件付き UPDATE で行う。
条件が成立しなかった場合は「減算時点で在庫不足」として扱う。
"""

import asyncio
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Protocol

from sqlalchemy import text
from sqlalchemy.orm import sessionmaker

from services.shared.events import to_money


@dataclass(frozen=True)
class CatalogEntry:
    product_id: int
    name: str
    price: Decimal
    stock: int


class CatalogStore(Protocol):
    async def get(self, product_id: int) -> CatalogEntry | None: ...

    async def decrement_stock(self, product_id: int, quantity: int) -> bool: ...


class InMemoryCatalogStore:
    def __init__(self, entries: list[CatalogEntry] | None = None) -> None:
        self._entries = {e.product_id: e for e in entries or []}
        self._lock = asyncio.Lock()

    async def get(self, product_id: int) -> CatalogEntry | None:
        return self._entries.get(product_id)

    async def decrement_stock(self, product_id: int, quantity: int) -> bool:
        async with self._lock:
            entry = self._entries.get(product_id)
            if entry is None or entry.stock < quantity:
                return False
            self._entries[product_id] = replace(entry, stock=entry.stock - quantity)
            return True

    def put(self, entry: CatalogEntry) -> None:
        self._entries[entry.product_id] = entry

    def remove(self, product_id: int) -> None:
        self._entries.pop(product_id, None)

    def stock_of(self, product_id: int) -> int:
        return self._entries[product_id].stock


class SqlCatalogStore:
    """商品サービスの products テーブルに対する実装。"""

    def __init__(self, session_factory: sessionmaker) -> None:
        self.session_factory = session_factory

    async def get(self, product_id: int) -> CatalogEntry | None:
        async with self.session_factory() as session:
            result = await session.execute(
                text("SELECT id, name, price, stock_quantity FROM products WHERE id = :id"),
                {"id": product_id},
            )
            row = result.fetchone()
        if not row:
            return None
        return CatalogEntry(
            product_id=row.id,
            name=row.name,
            price=to_money(row.price),
            stock=row.stock_quantity,
        )

    async def decrement_stock(self, product_id: int, quantity: int) -> bool:
        async with self.session_factory() as session:
            result = await session.execute(
                text("""
                    UPDATE products
                    SET stock_quantity = stock_quantity - :qty, updated_at = CURRENT_TIMESTAMP
                    WHERE id = :id AND stock_quantity >= :qty
                """),
                {"qty": quantity, "id": product_id},
            )
            await session.commit()
        return result.rowcount == 1
