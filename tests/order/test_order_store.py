"""Tests for the SQL and in-memory order stores."""

from __future__ import annotations

from decimal import Decimal

import pytest
import pytest_asyncio

from services.order.app.aggregate import OrderLine
from services.order.app.status import OrderStatusMachine
from services.order.app.store import InMemoryOrderStore, SqlOrderStore
from services.shared.errors import IllegalTransition
from services.shared.events import OrderStatus

LINES = [
    OrderLine(product_id=1, product_name="Laptop", quantity=2, unit_price=Decimal("999.99")),
    OrderLine(product_id=2, product_name="Mouse", quantity=1, unit_price=Decimal("25.50")),
]


@pytest_asyncio.fixture(params=["memory", "sql"])
async def store(request, sqlite_engine, session_factory):
    if request.param == "memory":
        return InMemoryOrderStore()
    await SqlOrderStore.create_schema(sqlite_engine)
    return SqlOrderStore(session_factory)


def _confirm(order):
    OrderStatusMachine.check(order.id, order.status, OrderStatus.CONFIRMED)
    return OrderStatus.CONFIRMED


async def test_add_assigns_ids_and_timestamps(store):
    order = await store.add(1, LINES, OrderStatus.PENDING)

    assert order.id
    assert all(l.id for l in order.lines)
    assert len({l.id for l in order.lines}) == 2
    assert order.created_at == order.updated_at
    assert order.created_at.tzinfo is not None
    assert order.total_amount == Decimal("2025.48")


async def test_get_round_trips_aggregate(store):
    order = await store.add(1, LINES, OrderStatus.PENDING)

    loaded = await store.get(order.id)

    assert loaded.id == order.id
    assert loaded.buyer_id == 1
    assert loaded.status == OrderStatus.PENDING
    assert [(l.product_id, l.product_name, l.quantity, l.unit_price) for l in loaded.lines] == [
        (1, "Laptop", 2, Decimal("999.99")),
        (2, "Mouse", 1, Decimal("25.50")),
    ]
    assert loaded.total_amount == Decimal("2025.48")


async def test_get_missing(store):
    assert await store.get("missing") is None


async def test_listing(store):
    a = await store.add(1, LINES[:1], OrderStatus.PENDING)
    b = await store.add(2, LINES[1:], OrderStatus.PENDING)
    c = await store.add(1, LINES, OrderStatus.PENDING)

    assert [o.id for o in await store.list_all()] == [a.id, b.id, c.id]
    assert [o.id for o in await store.list_by_buyer(1)] == [a.id, c.id]
    assert await store.list_by_buyer(3) == []


async def test_update_status(store):
    order = await store.add(1, LINES, OrderStatus.PENDING)

    previous, updated = await store.update_status(order.id, _confirm)

    assert previous.status == OrderStatus.PENDING
    assert updated.status == OrderStatus.CONFIRMED
    assert updated.version == previous.version + 1
    assert updated.updated_at >= previous.updated_at
    loaded = await store.get(order.id)
    assert loaded.status == OrderStatus.CONFIRMED
    assert loaded.created_at == order.created_at


async def test_rejected_update_leaves_order_unchanged(store):
    order = await store.add(1, LINES, OrderStatus.PENDING)
    await store.update_status(order.id, _confirm)

    with pytest.raises(IllegalTransition):
        await store.update_status(order.id, _confirm)

    loaded = await store.get(order.id)
    assert loaded.status == OrderStatus.CONFIRMED
    assert loaded.version == 2


async def test_update_missing(store):
    assert await store.update_status("missing", _confirm) is None


async def test_large_total_round_trips(store):
    lines = [
        OrderLine(product_id=1, product_name="Server", quantity=10_000, unit_price=Decimal("99999999.99")),
    ]
    order = await store.add(1, lines, OrderStatus.PENDING)

    loaded = await store.get(order.id)

    assert loaded.total_amount == Decimal("999999999900.00")
