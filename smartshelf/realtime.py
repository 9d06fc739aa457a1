"""Realtime change feed: per-table insert/update/delete events.

`ChangeBus` fans events out to subscribers. `StreamListener` feeds the bus from
DynamoDB Streams on a background thread. Tests and local tools may publish to
the bus directly.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable, Optional

import boto3
from boto3.dynamodb.types import TypeDeserializer
from botocore.exceptions import BotoCoreError, ClientError

from smartshelf.models.inventory import utc_now_iso
from smartshelf.store import from_dynamo

logger = logging.getLogger(__name__)


class ChangeType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


# DynamoDB Streams eventName -> ChangeType
STREAM_EVENT_NAMES = {
    "INSERT": ChangeType.INSERT,
    "MODIFY": ChangeType.UPDATE,
    "REMOVE": ChangeType.DELETE,
}

# get_records errors that need a fresh iterator -> iterator type to reopen with
RENEWABLE_ERRORS = {
    "ExpiredIteratorException": "AFTER_SEQUENCE_NUMBER",
    "TrimmedDataAccessException": "TRIM_HORIZON",
}


@dataclass
class ChangeEvent:
    table: str
    change_type: ChangeType
    new: Optional[dict] = None
    old: Optional[dict] = None
    received_at: str = field(default_factory=utc_now_iso)

    @property
    def row_id(self) -> Optional[str]:
        row = self.new or self.old or {}
        return row.get("id")


ChangeHandler = Callable[[ChangeEvent], None]


class Subscription:
    """One handler on one table. After unsubscribe() returns, the handler is never entered again."""

    def __init__(
        self,
        bus: ChangeBus,
        table: str,
        handler: ChangeHandler,
        events: Optional[frozenset] = None,
    ) -> None:
        self.subscription_id = str(uuid.uuid4())
        self.table = table
        self.events = events
        self._bus = bus
        self._handler = handler
        self._active = True
        # Re-entrant: a handler may unsubscribe itself
        self._lock = threading.RLock()

    @property
    def active(self) -> bool:
        return self._active

    def wants(self, event: ChangeEvent) -> bool:
        return event.table == self.table and (self.events is None or event.change_type in self.events)

    def deliver(self, event: ChangeEvent) -> None:
        with self._lock:
            if not self._active:
                return
            self._handler(event)

    def unsubscribe(self) -> None:
        with self._lock:
            if not self._active:
                return
            self._active = False
        self._bus._remove(self)
        logger.debug("Unsubscribed %s from %s", self.subscription_id, self.table)


class ChangeBus:
    def __init__(self) -> None:
        self._subscriptions: dict[str, list[Subscription]] = {}
        self._lock = threading.Lock()

    def subscribe(
        self,
        table: str,
        handler: ChangeHandler,
        events: Optional[Iterable[ChangeType]] = None,
    ) -> Subscription:
        subscription = Subscription(
            self, table, handler, frozenset(events) if events is not None else None
        )
        with self._lock:
            self._subscriptions.setdefault(table, []).append(subscription)
        logger.debug("Subscribed %s to %s", subscription.subscription_id, table)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            subscriptions = self._subscriptions.get(subscription.table, [])
            if subscription in subscriptions:
                subscriptions.remove(subscription)

    def active_subscriptions(self, table: Optional[str] = None) -> list[Subscription]:
        with self._lock:
            if table is not None:
                return list(self._subscriptions.get(table, []))
            return [s for subs in self._subscriptions.values() for s in subs]

    def publish(self, event: ChangeEvent) -> int:
        """Delivers an event to every matching subscriber; returns how many were called."""
        with self._lock:
            targets = [s for s in self._subscriptions.get(event.table, []) if s.wants(event)]

        delivered = 0
        for subscription in targets:
            try:
                subscription.deliver(event)
                delivered += 1
            except Exception as e:
                logger.error(
                    "Change handler %s failed on %s %s: %s",
                    subscription.subscription_id,
                    event.table,
                    event.change_type.value,
                    e,
                )
        return delivered


class StreamListener:
    """Polls the DynamoDB Stream of each table and publishes ChangeEvents."""

    def __init__(
        self,
        bus: ChangeBus,
        tables: Iterable[str],
        table_prefix: str = "",
        poll_interval: float = 1.0,
        region_name: str = "us-west-2",
        dynamodb_client: Optional[Any] = None,
        streams_client: Optional[Any] = None,
    ) -> None:
        self.bus = bus
        self.tables = list(tables)
        self.table_prefix = table_prefix
        self.poll_interval = poll_interval
        self.dynamodb = dynamodb_client or boto3.client("dynamodb", region_name=region_name)
        self.streams = streams_client or boto3.client("dynamodbstreams", region_name=region_name)
        self._deserializer = TypeDeserializer()
        # table -> {shard_id: iterator}
        self._iterators: dict[str, dict[str, Optional[str]]] = {}
        # (table, shard_id) -> last sequence number read
        self._positions: dict[tuple[str, str], str] = {}
        self._stream_arns: dict[str, str] = {}
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        for table in self.tables:
            self._open_table(table, "LATEST")
        self._thread = threading.Thread(target=self._run, name="smartshelf-streams", daemon=True)
        self._thread.start()
        logger.info("Stream listener started for %d tables", len(self.tables))

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Stream listener stopped")

    def __enter__(self) -> StreamListener:
        self.start()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.stop()

    def _run(self) -> None:
        while not self._stop.is_set():
            self.poll_once()
            self._stop.wait(self.poll_interval)

    def _open_table(self, table: str, iterator_type: str) -> None:
        try:
            if table not in self._stream_arns:
                description = self.dynamodb.describe_table(TableName=f"{self.table_prefix}{table}")
                arn = description["Table"].get("LatestStreamArn")
                if not arn:
                    logger.warning("Table %s has no stream enabled", table)
                    return
                self._stream_arns[table] = arn
            self._refresh_shards(table, iterator_type)
        except (ClientError, BotoCoreError) as e:
            logger.error("Could not open stream for %s: %s", table, e)

    def _refresh_shards(self, table: str, iterator_type: str) -> None:
        arn = self._stream_arns[table]
        known = self._iterators.setdefault(table, {})
        stream = self.streams.describe_stream(StreamArn=arn)["StreamDescription"]
        for shard in stream.get("Shards", []):
            shard_id = shard["ShardId"]
            if shard_id in known:
                continue
            # Closed shards opened later would replay history
            if shard.get("SequenceNumberRange", {}).get("EndingSequenceNumber") and iterator_type == "LATEST":
                known[shard_id] = None
                continue
            iterator = self.streams.get_shard_iterator(
                StreamArn=arn, ShardId=shard_id, ShardIteratorType=iterator_type
            )["ShardIterator"]
            known[shard_id] = iterator

    def poll_once(self) -> int:
        """Reads every open shard once; returns the number of events published."""
        published = 0
        for table in self.tables:
            if table not in self._stream_arns:
                self._open_table(table, "LATEST")
                continue
            shards = self._iterators.get(table, {})
            closed = False
            for shard_id, iterator in list(shards.items()):
                if iterator is None:
                    continue
                try:
                    response = self.streams.get_records(ShardIterator=iterator)
                except ClientError as e:
                    logger.error("get_records failed on %s/%s: %s", table, shard_id, e)
                    code = e.response.get("Error", {}).get("Code", "")
                    if code in RENEWABLE_ERRORS:
                        shards[shard_id] = (
                            self._renew_iterator(table, shard_id, RENEWABLE_ERRORS[code]) or iterator
                        )
                    continue
                except BotoCoreError as e:
                    logger.error("get_records failed on %s/%s: %s", table, shard_id, e)
                    continue
                for record in response.get("Records", []):
                    sequence_number = record.get("dynamodb", {}).get("SequenceNumber")
                    if sequence_number:
                        self._positions[(table, shard_id)] = sequence_number
                    event = self.to_event(table, record)
                    if event is not None:
                        self.bus.publish(event)
                        published += 1
                next_iterator = response.get("NextShardIterator")
                shards[shard_id] = next_iterator
                if next_iterator is None:
                    closed = True
            if closed:
                # Child shards start where the parent ended
                try:
                    self._refresh_shards(table, "TRIM_HORIZON")
                except (ClientError, BotoCoreError) as e:
                    logger.error("Could not refresh shards for %s: %s", table, e)
        return published

    def _renew_iterator(self, table: str, shard_id: str, iterator_type: str) -> Optional[str]:
        """New iterator for a shard whose iterator expired or whose position was trimmed.

        An expired iterator resumes after the last record read (or at LATEST when
        nothing was read yet). Trimmed data resumes at the oldest record still kept.
        """
        kwargs = {"StreamArn": self._stream_arns[table], "ShardId": shard_id}
        position = self._positions.get((table, shard_id))
        if iterator_type == "AFTER_SEQUENCE_NUMBER" and position:
            kwargs.update(ShardIteratorType=iterator_type, SequenceNumber=position)
        elif iterator_type == "AFTER_SEQUENCE_NUMBER":
            kwargs["ShardIteratorType"] = "LATEST"
        else:
            kwargs["ShardIteratorType"] = iterator_type
        try:
            iterator = self.streams.get_shard_iterator(**kwargs)["ShardIterator"]
        except (ClientError, BotoCoreError) as e:
            logger.error("Could not renew iterator for %s/%s: %s", table, shard_id, e)
            return None
        logger.info("Renewed %s iterator for %s/%s", kwargs["ShardIteratorType"], table, shard_id)
        return iterator

    def to_event(self, table: str, record: dict) -> Optional[ChangeEvent]:
        change_type = STREAM_EVENT_NAMES.get(record.get("eventName", ""))
        if change_type is None:
            return None
        data = record.get("dynamodb", {})
        return ChangeEvent(
            table=table,
            change_type=change_type,
            new=self._image(data.get("NewImage")),
            old=self._image(data.get("OldImage")),
        )

    def _image(self, image: Optional[dict]) -> Optional[dict]:
        if not image:
            return None
        return from_dynamo({k: self._deserializer.deserialize(v) for k, v in image.items()})
