"""
Shared — イベントチャネル (Publish / Subscribe)

耐久性のあるパーティション付きイベントログに対する抽象。

  - publish(topic, key, event): ローカルでの送信受付までしか待たない
  - subscribe(topic, group, handler): 配信ごとにハンドラを呼ぶ
  - 同じ key のイベントは順序どおりに配信される
  - 配信は at-least-once。exactly-once は保証しない
    (コンシューマ障害後の再配信で重複が起こり得る)

発行失敗はチャネル自身がカウントし (publish_failures / Prometheus)、
PublishFailure として呼び出し元に伝える。
"""

import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from .errors import PublishFailure
from .events import WireModel, decode_event, encode_event
from .metrics import EVENT_PUBLISH_FAILURES

logger = logging.getLogger(__name__)

Handler = Callable[[WireModel], Awaitable[None]]


class EventChannel(ABC):
    """チャネル実装の共通部分 (失敗カウントとハンドラ呼び出し)。"""

    def __init__(self) -> None:
        self._publish_failures: dict[str, int] = defaultdict(int)
        self._handler_errors: dict[str, int] = defaultdict(int)
        self._messages_processed = 0

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        pass

    async def publish(self, topic: str, key: str, event: WireModel) -> None:
        try:
            await self._send(topic, key, event)
        except Exception as exc:
            self._publish_failures[topic] += 1
            EVENT_PUBLISH_FAILURES.labels(topic=topic).inc()
            raise PublishFailure(topic, key) from exc

    @abstractmethod
    async def _send(self, topic: str, key: str, event: WireModel) -> None:
        ...

    @abstractmethod
    async def subscribe(self, topic: str, group: str, handler: Handler) -> None:
        ...

    async def _dispatch(
        self, topic: str, group: str, handler: Handler, event: WireModel
    ) -> bool:
        """ハンドラを呼ぶ。成功したら True (= ack してよい)。"""
        try:
            await handler(event)
        except Exception:
            self._handler_errors[f"{topic}/{group}"] += 1
            logger.exception(
                "Handler error on topic=%s group=%s event=%s",
                topic, group, type(event).__name__,
            )
            return False
        self._messages_processed += 1
        return True

    # ── Observability ────────────────────────────

    @property
    def publish_failures(self) -> dict[str, int]:
        return dict(self._publish_failures)

    @property
    def total_publish_failures(self) -> int:
        return sum(self._publish_failures.values())

    @property
    def messages_processed(self) -> int:
        return self._messages_processed

    def get_error_counts(self) -> dict[str, int]:
        return dict(self._handler_errors)

    def stats(self) -> dict:
        return {
            "publish_failures": self.publish_failures,
            "messages_processed": self.messages_processed,
            "handler_errors": self.get_error_counts(),
        }


@dataclass(frozen=True)
class Envelope:
    topic: str
    key: str
    data: str


class MemoryEventChannel(EventChannel):
    """
    プロセス内チャネル (テスト・ローカル開発用)。

    publish されたイベントは JSON に直列化して履歴に積み、
    購読グループごとに同期的・発行順に配信する。
    redeliver() で at-least-once の重複配信を再現できる。
    """

    def __init__(self) -> None:
        super().__init__()
        self._handlers: dict[str, list[tuple[str, Handler]]] = defaultdict(list)
        self._history: list[Envelope] = []

    async def _send(self, topic: str, key: str, event: WireModel) -> None:
        envelope = Envelope(topic, key, encode_event(event))
        self._history.append(envelope)
        await self._deliver(envelope)

    async def subscribe(self, topic: str, group: str, handler: Handler) -> None:
        self._handlers[topic].append((group, handler))

    async def _deliver(self, envelope: Envelope) -> None:
        for group, handler in self._handlers.get(envelope.topic, []):
            event = decode_event(envelope.topic, envelope.data)
            await self._dispatch(envelope.topic, group, handler, event)

    async def redeliver(self, topic: str | None = None) -> int:
        """履歴にあるイベントをもう一度配信する。配信した件数を返す。"""
        envelopes = [e for e in self._history if topic is None or e.topic == topic]
        for envelope in envelopes:
            await self._deliver(envelope)
        return len(envelopes)

    # ── Testing helpers ──────────────────────────

    def get_history(self, topic: str | None = None) -> list[WireModel]:
        return [
            decode_event(e.topic, e.data)
            for e in self._history
            if topic is None or e.topic == topic
        ]

    def get_envelopes(self, topic: str | None = None) -> list[Envelope]:
        return [e for e in self._history if topic is None or e.topic == topic]

    def clear_history(self) -> None:
        self._history.clear()
