"""Shared fixtures for the order / inventory test suite."""

from __future__ import annotations

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from services.order.app.orchestrator import OrderOrchestrator
from services.order.app.store import InMemoryOrderStore
from services.shared.channel import MemoryEventChannel

from .doubles import FakeValidationClient


# ---------------------------------------------------------------------------
# Order side
# ---------------------------------------------------------------------------

@pytest.fixture
def validation() -> FakeValidationClient:
    client = FakeValidationClient()
    client.add_buyer(1)
    client.add_product(1, "Laptop", "999.99", 10)
    client.add_product(2, "Mouse", "25.50", 5)
    return client


@pytest.fixture
def channel() -> MemoryEventChannel:
    return MemoryEventChannel()


@pytest.fixture
def order_store() -> InMemoryOrderStore:
    return InMemoryOrderStore()


@pytest.fixture
def orchestrator(order_store, validation, channel) -> OrderOrchestrator:
    return OrderOrchestrator(order_store, validation, channel)


# ---------------------------------------------------------------------------
# SQL
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def sqlite_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(sqlite_engine) -> sessionmaker:
    return sessionmaker(sqlite_engine, class_=AsyncSession, expire_on_commit=False)
