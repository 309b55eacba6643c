"""
Order Service — 外部サービスへの同期呼び出し (ValidationClient)

注文作成時に、ユーザーディレクトリと商品カタログへ問い合わせる。

  GET {USER_SERVICE_URL}/users/{id}
  GET {PRODUCT_SERVICE_URL}/products/{id}

インターフェースは get_buyer / get_product の 2 つだけ。
テストではネットワークなしのダブルに差し替える。

タイムアウト・接続エラー・404 などはすべて「存在しない」扱いにする
(リトライはこの層では行わない)。
"""

import logging
from datetime import datetime
from typing import Protocol

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from services.shared.errors import BuyerNotFound, ProductNotFound
from services.shared.events import Money

logger = logging.getLogger(__name__)


class BuyerIdentity(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    id: int
    name: str
    email: str | None = None
    created_at: datetime | None = Field(default=None, alias="createdAt")
    updated_at: datetime | None = Field(default=None, alias="updatedAt")


class CatalogEntry(BaseModel):
    """商品カタログのスナップショット (名前・単価・在庫数)"""
    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    id: int
    name: str
    description: str | None = None
    price: Money
    stock: int = Field(alias="stockQuantity")
    created_at: datetime | None = Field(default=None, alias="createdAt")
    updated_at: datetime | None = Field(default=None, alias="updatedAt")


class ValidationClient(Protocol):
    async def get_buyer(self, buyer_id: int) -> BuyerIdentity: ...

    async def get_product(self, product_id: int) -> CatalogEntry: ...


class HttpValidationClient:
    """httpx による ValidationClient の実装。"""

    def __init__(
        self,
        client: httpx.AsyncClient,
        user_service_url: str,
        product_service_url: str,
    ) -> None:
        self.client = client
        self.user_url = user_service_url.rstrip("/")
        self.product_url = product_service_url.rstrip("/")

    async def get_buyer(self, buyer_id: int) -> BuyerIdentity:
        try:
            resp = await self.client.get(f"{self.user_url}/users/{buyer_id}")
            resp.raise_for_status()
            return BuyerIdentity.model_validate_json(resp.content)
        except (httpx.HTTPError, ValidationError) as e:
            logger.error("User validation failed for user ID: %s (%s)", buyer_id, e)
            raise BuyerNotFound(buyer_id) from e

    async def get_product(self, product_id: int) -> CatalogEntry:
        try:
            resp = await self.client.get(f"{self.product_url}/products/{product_id}")
            resp.raise_for_status()
            return CatalogEntry.model_validate_json(resp.content)
        except (httpx.HTTPError, ValidationError) as e:
            logger.error("Product validation failed for product ID: %s (%s)", product_id, e)
            raise ProductNotFound(product_id) from e
