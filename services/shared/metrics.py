"""
Shared — Prometheus メトリクス

握りつぶされる失敗 (イベント発行失敗・在庫反映失敗) を
運用者が検知できるようにするためのカウンタ。
"""

from prometheus_client import Counter, make_asgi_app

ORDERS_CREATED = Counter(
    "orders_created",
    "Orders persisted by the order service",
)

ORDER_STATUS_CHANGES = Counter(
    "order_status_changes",
    "Committed order status transitions",
    ["previous", "new"],
)

EVENT_PUBLISH_FAILURES = Counter(
    "event_publish_failures",
    "Events that could not be handed to the event channel",
    ["topic"],
)

RECONCILIATION_LINES = Counter(
    "reconciliation_lines",
    "Order lines processed by the inventory reconciler",
    ["outcome"],
)


def metrics_app():
    """/metrics にマウントする ASGI アプリを返す。"""
    return make_asgi_app()
