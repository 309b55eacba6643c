"""Tests for HttpValidationClient against a mocked transport."""

from __future__ import annotations

from decimal import Decimal

import httpx
import pytest
import pytest_asyncio

from services.order.app.clients import HttpValidationClient
from services.shared.errors import BuyerNotFound, ProductNotFound

USERS = {
    1: {
        "id": 1,
        "name": "Alice",
        "email": "alice@example.com",
        "createdAt": "2024-01-01T10:00:00",
        "updatedAt": "2024-01-01T10:00:00",
    },
}

PRODUCTS = {
    1: {
        "id": 1,
        "name": "Laptop",
        "description": "15 inch",
        "price": 999.99,
        "stockQuantity": 10,
        "createdAt": "2024-01-01T10:00:00",
        "updatedAt": "2024-01-01T10:00:00",
    },
    2: {"id": 2, "name": "Broken", "price": "n/a", "stockQuantity": 1},
}


def _handler(request: httpx.Request) -> httpx.Response:
    kind, _, raw_id = request.url.path.strip("/").partition("/")
    if raw_id == "500":
        return httpx.Response(500, json={"message": "boom"})
    if raw_id == "timeout":
        raise httpx.ReadTimeout("timed out", request=request)
    table = {"users": USERS, "products": PRODUCTS}[kind]
    body = table.get(int(raw_id))
    if body is None:
        return httpx.Response(400, json={"message": "not found", "status": "400"})
    return httpx.Response(200, json=body)


@pytest_asyncio.fixture
async def client():
    async with httpx.AsyncClient(transport=httpx.MockTransport(_handler)) as http:
        yield HttpValidationClient(http, "http://users", "http://products/")


class TestGetBuyer:

    async def test_found(self, client):
        buyer = await client.get_buyer(1)
        assert buyer.id == 1
        assert buyer.name == "Alice"

    @pytest.mark.parametrize("buyer_id", [7, "500", "timeout"])
    async def test_absent_or_unreachable(self, client, buyer_id):
        with pytest.raises(BuyerNotFound):
            await client.get_buyer(buyer_id)


class TestGetProduct:

    async def test_found_with_exact_price(self, client):
        product = await client.get_product(1)
        assert product.name == "Laptop"
        assert product.price == Decimal("999.99")
        assert product.stock == 10

    @pytest.mark.parametrize("product_id", [7, "500", "timeout", 2])
    async def test_absent_unreachable_or_malformed(self, client, product_id):
        with pytest.raises(ProductNotFound) as exc_info:
            await client.get_product(product_id)
        assert str(exc_info.value) == f"Product not found with ID: {product_id}"
