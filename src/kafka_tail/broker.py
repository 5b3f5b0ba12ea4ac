"""
Broker access for the consume pipeline.

BrokerClient is the interface the core depends on: list partitions,
probe a partition leader for its high watermark, and stream records
from one partition. AIOKafkaBrokerClient implements it with aiokafka,
using standalone consumers (no consumer group, no offset commits).
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import AsyncIterator, List, Optional

from aiokafka import AIOKafkaConsumer
from aiokafka.errors import KafkaError
from aiokafka.structs import ConsumerRecord, TopicPartition

from kafka_tail.common.exceptions import PartitionAttachError, TopicNotFoundError
from kafka_tail.common.logging import get_logger, log_with_context
from kafka_tail.config import KafkaConfig
from kafka_tail.schemas.records import OFFSET_NEWEST, OFFSET_OLDEST, FetchedRecord

logger = get_logger(__name__)


class BrokerClient(ABC):
    """Operations the consume pipeline needs from the cluster."""

    async def start(self) -> None:
        """Connect to the cluster."""

    async def stop(self) -> None:
        """Release connections. Safe to call multiple times."""

    @abstractmethod
    async def partitions(self, topic: str) -> List[int]:
        """
        List partition ids of a topic, sorted.

        Raises:
            TopicNotFoundError: If the topic does not exist
        """

    @abstractmethod
    async def probe_high_watermark(self, topic: str, partition: int) -> int:
        """Ask the partition leader for its high watermark. May fail transiently."""

    @abstractmethod
    def fetch_stream(
        self, topic: str, partition: int, start_offset: int
    ) -> AsyncIterator[FetchedRecord]:
        """
        Stream records from one partition starting at start_offset.

        start_offset may be OFFSET_OLDEST or OFFSET_NEWEST. The stream
        only ends when the connection is torn down.

        Raises:
            PartitionAttachError: If the partition cannot be consumed
        """


def to_fetched_record(message: ConsumerRecord) -> FetchedRecord:
    """Convert an aiokafka ConsumerRecord to a FetchedRecord."""
    headers = tuple(
        (
            hdr_key.encode("utf-8") if isinstance(hdr_key, str) else hdr_key,
            hdr_value if hdr_value is not None else b"",
        )
        for hdr_key, hdr_value in (message.headers or ())
    )
    return FetchedRecord(
        topic=message.topic,
        partition=message.partition,
        offset=message.offset,
        timestamp=datetime.fromtimestamp(message.timestamp / 1000, tz=timezone.utc),
        key=message.key,
        value=message.value if message.value is not None else b"",
        headers=headers,
    )


class AIOKafkaBrokerClient(BrokerClient):
    """
    aiokafka-backed broker client.

    One metadata consumer serves partition listing and high watermark
    probes; every fetch stream gets its own consumer assigned to a single
    partition.

    Usage:
        >>> broker = AIOKafkaBrokerClient(KafkaConfig.from_env())
        >>> await broker.start()
        >>> partitions = await broker.partitions("orders")
        >>> async for record in broker.fetch_stream("orders", 0, OFFSET_OLDEST):
        ...     print(record.offset)
        >>> await broker.stop()
    """

    def __init__(self, config: KafkaConfig):
        self.config = config
        self._metadata_consumer: Optional[AIOKafkaConsumer] = None

    async def start(self) -> None:
        if self._metadata_consumer is not None:
            return

        log_with_context(
            logger,
            logging.DEBUG,
            "Connecting to Kafka",
            bootstrap_servers=self.config.bootstrap_servers,
        )
        consumer = AIOKafkaConsumer(**self.config.to_consumer_config())
        await consumer.start()
        self._metadata_consumer = consumer

    async def stop(self) -> None:
        if self._metadata_consumer is None:
            return
        try:
            await self._metadata_consumer.stop()
        finally:
            self._metadata_consumer = None

    def _require_started(self) -> AIOKafkaConsumer:
        if self._metadata_consumer is None:
            raise RuntimeError("Broker client is not started")
        return self._metadata_consumer

    async def partitions(self, topic: str) -> List[int]:
        consumer = self._require_started()
        # topics() forces a metadata refresh; partitions_for_topic reads the cache
        await consumer.topics()
        partitions = consumer.partitions_for_topic(topic)
        if not partitions:
            raise TopicNotFoundError(topic)
        return sorted(partitions)

    async def probe_high_watermark(self, topic: str, partition: int) -> int:
        consumer = self._require_started()
        tp = TopicPartition(topic, partition)
        offsets = await consumer.end_offsets([tp])
        return offsets[tp]

    async def fetch_stream(
        self, topic: str, partition: int, start_offset: int
    ) -> AsyncIterator[FetchedRecord]:
        tp = TopicPartition(topic, partition)
        consumer = AIOKafkaConsumer(**self.config.to_consumer_config())

        try:
            await consumer.start()
            consumer.assign([tp])
            if start_offset == OFFSET_OLDEST:
                await consumer.seek_to_beginning(tp)
            elif start_offset == OFFSET_NEWEST:
                await consumer.seek_to_end(tp)
            else:
                consumer.seek(tp, start_offset)
        except (KafkaError, OSError, ValueError) as e:
            await consumer.stop()
            raise PartitionAttachError(topic, partition, cause=e) from e

        log_with_context(
            logger,
            logging.DEBUG,
            "Attached to partition",
            topic=topic,
            partition=partition,
            start_offset=start_offset,
        )

        try:
            async for message in consumer:
                yield to_fetched_record(message)
        finally:
            await consumer.stop()


__all__ = [
    "BrokerClient",
    "AIOKafkaBrokerClient",
    "to_fetched_record",
]
