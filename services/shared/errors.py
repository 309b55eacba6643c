"""
Shared — エラー分類

呼び出し元へ返すエラー (400 で拒否されるもの) と、
発生源で握りつぶしてログ・メトリクスにのみ残すエラー
(PublishFailure / ReconciliationFailure) を区別する。
"""


class OrderServiceError(Exception):
    """呼び出し元に返すドメインエラーの基底クラス。"""

    status_code: int = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class BuyerNotFound(OrderServiceError):
    def __init__(self, buyer_id) -> None:
        super().__init__(f"User not found with ID: {buyer_id}")
        self.buyer_id = buyer_id


class ProductNotFound(OrderServiceError):
    def __init__(self, product_id) -> None:
        super().__init__(f"Product not found with ID: {product_id}")
        self.product_id = product_id


class InsufficientStock(OrderServiceError):
    def __init__(self, product_name: str, available: int, requested: int) -> None:
        super().__init__(
            f"Insufficient stock for product {product_name}. "
            f"Available: {available}, Requested: {requested}"
        )
        self.product_name = product_name
        self.available = available
        self.requested = requested


class OrderNotFound(OrderServiceError):
    def __init__(self, order_id) -> None:
        super().__init__(f"Order not found with ID: {order_id}")
        self.order_id = order_id


class IllegalTransition(OrderServiceError):
    def __init__(self, order_id, current, requested) -> None:
        super().__init__(
            f"Illegal status transition for order {order_id}: "
            f"{current.value} -> {requested.value}"
        )
        self.order_id = order_id
        self.current = current
        self.requested = requested


class ValidationFailure(OrderServiceError):
    """リクエストの形式が不正 (必須項目の欠落、数量 < 1 など)。"""


class ConcurrentModification(OrderServiceError):
    """楽観的ロックの再試行回数を使い切った。"""

    def __init__(self, order_id) -> None:
        super().__init__(f"Order {order_id} was modified concurrently, please retry")
        self.order_id = order_id


# ── 非致命的エラー (呼び出し元には返さない) ────────


class PublishFailure(Exception):
    """イベント発行の失敗。注文の永続化は取り消さない。"""

    def __init__(self, topic: str, key: str) -> None:
        super().__init__(f"Failed to publish event to {topic} (key={key})")
        self.topic = topic
        self.key = key


class ReconciliationFailure(Exception):
    """在庫反映の明細単位の失敗。リトライもデッドレターもしない。"""

    def __init__(self, order_id: str, product_id: int, reason: str) -> None:
        super().__init__(
            f"Failed to reconcile product {product_id} for order {order_id}: {reason}"
        )
        self.order_id = order_id
        self.product_id = product_id
        self.reason = reason
