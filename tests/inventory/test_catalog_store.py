"""Tests for SqlCatalogStore's read and floor-respecting decrement."""

from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

from services.inventory.app.catalog import SqlCatalogStore


@pytest_asyncio.fixture
async def sqlite_engine(tmp_path):
    # one connection per session so concurrent decrements contend on the file lock
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'products.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def catalog(sqlite_engine, session_factory):
    async with sqlite_engine.begin() as conn:
        await conn.execute(text("""
            CREATE TABLE products (
                id INTEGER PRIMARY KEY,
                name VARCHAR(255) NOT NULL,
                description TEXT,
                price NUMERIC(10, 2) NOT NULL,
                stock_quantity INTEGER NOT NULL,
                created_at TIMESTAMP,
                updated_at TIMESTAMP
            )
        """))
        await conn.execute(text("""
            INSERT INTO products (id, name, price, stock_quantity)
            VALUES (1, 'Laptop', 999.99, 10), (2, 'Mouse', 25.50, 1)
        """))
    return SqlCatalogStore(session_factory)


async def _stock(catalog, product_id):
    return (await catalog.get(product_id)).stock


async def test_get(catalog):
    entry = await catalog.get(1)

    assert entry.product_id == 1
    assert entry.name == "Laptop"
    assert entry.price == Decimal("999.99")
    assert entry.stock == 10


async def test_get_missing(catalog):
    assert await catalog.get(404) is None


async def test_decrement(catalog):
    assert await catalog.decrement_stock(1, 3) is True
    assert await _stock(catalog, 1) == 7


async def test_decrement_to_zero(catalog):
    assert await catalog.decrement_stock(2, 1) is True
    assert await _stock(catalog, 2) == 0


async def test_decrement_refused_below_zero(catalog):
    assert await catalog.decrement_stock(2, 2) is False
    assert await _stock(catalog, 2) == 1


async def test_decrement_missing_product(catalog):
    assert await catalog.decrement_stock(404, 1) is False


async def test_concurrent_decrements_respect_floor(catalog):
    results = await asyncio.gather(*(catalog.decrement_stock(1, 3) for _ in range(6)))

    assert results.count(True) == 3
    assert await _stock(catalog, 1) == 1
