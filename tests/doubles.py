"""Test doubles shared by the order / inventory tests."""

from __future__ import annotations

from decimal import Decimal

from services.order.app.clients import BuyerIdentity, CatalogEntry
from services.order.app.schemas import OrderLineRequest
from services.shared.channel import MemoryEventChannel
from services.shared.errors import BuyerNotFound, ProductNotFound


class FakeValidationClient:
    """ValidationClient double backed by dicts; records every lookup."""

    def __init__(self) -> None:
        self.buyers: dict[int, BuyerIdentity] = {}
        self.products: dict[int, CatalogEntry] = {}
        self.calls: list[tuple[str, int]] = []

    def add_buyer(self, buyer_id: int, name: str = "Alice") -> None:
        self.buyers[buyer_id] = BuyerIdentity(id=buyer_id, name=name)

    def add_product(self, product_id: int, name: str, price: str, stock: int) -> None:
        self.products[product_id] = CatalogEntry(
            id=product_id, name=name, price=Decimal(price), stock=stock,
        )

    async def get_buyer(self, buyer_id: int) -> BuyerIdentity:
        self.calls.append(("buyer", buyer_id))
        try:
            return self.buyers[buyer_id]
        except KeyError:
            raise BuyerNotFound(buyer_id) from None

    async def get_product(self, product_id: int) -> CatalogEntry:
        self.calls.append(("product", product_id))
        try:
            return self.products[product_id]
        except KeyError:
            raise ProductNotFound(product_id) from None

    @property
    def product_calls(self) -> list[int]:
        return [pid for kind, pid in self.calls if kind == "product"]


class BrokenChannel(MemoryEventChannel):
    """Channel whose broker is unreachable."""

    async def _send(self, topic, key, event):
        raise ConnectionError("broker unavailable")


def line(product_id: int, quantity: int) -> OrderLineRequest:
    return OrderLineRequest(product_id=product_id, quantity=quantity)
