"""
Shared — Redis Streams によるイベントチャネル

Redis Pub/Sub は fire-and-forget で、購読者が落ちている間のイベントは失われる。
ここでは Redis Streams + コンシューマグループを使い、at-least-once 配信を実現する。

  ┌──────────────┐  XADD order-created  ┌───────────────┐  XREADGROUP  ┌───────────────────┐
  │ Order Service │ ───────────────────▶ │ Redis Stream  │ ───────────▶ │ Inventory Service │
  └──────────────┘                       └───────────────┘    XACK      └───────────────────┘

  - 1 トピック = 1 ストリーム。各エントリは key / type / data を持つ
  - ハンドラが正常終了してから XACK する
  - 起動時にこのコンシューマの未 ACK エントリを読み直す (クラッシュ後の再配信)
  - 1 バッチ内では key ごとにまとめ、異なる key は並行、同じ key は順番に処理する
"""

import asyncio
import logging
import os
import socket

import redis.asyncio as aioredis
from redis.exceptions import ResponseError

from .channel import EventChannel, Handler
from .events import WireModel, decode_event, encode_event

logger = logging.getLogger(__name__)


def default_consumer_name() -> str:
    # 同一ホストの複数プロセスが同じコンシューマ名を共有しないようにする
    return f"{socket.gethostname()}-{os.getpid()}"


class RedisStreamsChannel(EventChannel):
    def __init__(
        self,
        redis_url: str = "redis://localhost:6379",
        consumer_name: str | None = None,
        max_stream_length: int = 10_000,
        block_ms: int = 1000,
        batch_size: int = 10,
        publish_timeout: float = 2.0,
        redis: aioredis.Redis | None = None,
    ) -> None:
        super().__init__()
        self._redis_url = redis_url
        self._redis = redis
        self._owns_connection = redis is None
        self._consumer_name = consumer_name or default_consumer_name()
        self._max_len = max_stream_length
        self._block_ms = block_ms
        self._batch_size = batch_size
        self._publish_timeout = publish_timeout
        self._subscriptions: list[tuple[str, str, Handler]] = []
        self._tasks: list[asyncio.Task] = []
        self._running = False

    # ── Lifecycle ────────────────────────────────

    async def start(self) -> None:
        if self._redis is None:
            self._redis = aioredis.from_url(self._redis_url, decode_responses=True)
        self._running = True
        for topic, group, handler in self._subscriptions:
            await self._launch(topic, group, handler)

    async def stop(self) -> None:
        self._running = False
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        if self._redis is not None and self._owns_connection:
            await self._redis.aclose()
            self._redis = None

    # ── Publish / Subscribe ──────────────────────

    async def _send(self, topic: str, key: str, event: WireModel) -> None:
        if self._redis is None:
            raise RuntimeError("RedisStreamsChannel not started")
        fields = {
            "key": key,
            "type": type(event).__name__,
            "data": encode_event(event),
        }
        # 呼び出し元はローカルの送信受付までしか待たない
        await asyncio.wait_for(
            self._redis.xadd(topic, fields, maxlen=self._max_len, approximate=True),
            timeout=self._publish_timeout,
        )

    async def subscribe(self, topic: str, group: str, handler: Handler) -> None:
        self._subscriptions.append((topic, group, handler))
        if self._running:
            await self._launch(topic, group, handler)

    async def _launch(self, topic: str, group: str, handler: Handler) -> None:
        await self._ensure_group(topic, group)
        task = asyncio.create_task(
            self._consume_loop(topic, group, handler),
            name=f"consumer-{topic}-{group}",
        )
        self._tasks.append(task)

    async def _ensure_group(self, topic: str, group: str) -> None:
        try:
            await self._redis.xgroup_create(topic, group, id="0", mkstream=True)
        except ResponseError as exc:
            if "BUSYGROUP" not in str(exc):
                raise

    # ── Consumer loop ────────────────────────────

    async def _consume_loop(self, topic: str, group: str, handler: Handler) -> None:
        # "0" = 自分宛ての未 ACK エントリ、">" = 新着
        cursor = "0"
        logger.info(
            "Consuming topic=%s group=%s consumer=%s",
            topic, group, self._consumer_name,
        )
        while self._running:
            try:
                entries = await self._redis.xreadgroup(
                    groupname=group,
                    consumername=self._consumer_name,
                    streams={topic: cursor},
                    count=self._batch_size,
                    block=None if cursor == "0" else self._block_ms,
                )
                messages = [m for _stream, batch in entries or [] for m in batch]
                if not messages:
                    cursor = ">"
                    continue
                await self.process_batch(topic, group, handler, messages)
                if cursor != ">":
                    cursor = messages[-1][0]
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Consumer loop error on topic=%s group=%s", topic, group)
                await asyncio.sleep(1.0)

    async def process_batch(
        self,
        topic: str,
        group: str,
        handler: Handler,
        messages: list[tuple[str, dict | None]],
    ) -> None:
        """key ごとに分けて処理する。異なる key は並行、同じ key は到着順。"""
        partitions: dict[str, list[tuple[str, dict]]] = {}
        for msg_id, fields in messages:
            if fields is None:
                # MAXLEN でトリムされた未 ACK エントリは ID だけが返る
                logger.warning("Dropping trimmed entry %s on topic=%s", msg_id, topic)
                await self._redis.xack(topic, group, msg_id)
                continue
            partitions.setdefault(fields.get("key", ""), []).append((msg_id, fields))

        await asyncio.gather(*(
            self._process_partition(topic, group, handler, entries)
            for entries in partitions.values()
        ))

    async def _process_partition(
        self,
        topic: str,
        group: str,
        handler: Handler,
        entries: list[tuple[str, dict]],
    ) -> None:
        for msg_id, fields in entries:
            try:
                event = decode_event(topic, fields["data"])
            except (KeyError, ValueError):
                # 解釈できないエントリは再配信しても直らないので ACK して捨てる
                logger.exception("Dropping undecodable entry %s on topic=%s", msg_id, topic)
                await self._redis.xack(topic, group, msg_id)
                continue
            if await self._dispatch(topic, group, handler, event):
                await self._redis.xack(topic, group, msg_id)
            else:
                # 同じ key の後続を先に処理すると順序が崩れるので止める
                break
