"""
Consume orchestration.

Validates the requested partitions against the topic, resolves every
partition's start offset, then runs one worker per partition until the
streams close or the caller cancels.
"""

import logging
from typing import Optional

from kafka_tail.broker import BrokerClient
from kafka_tail.common.exceptions import ConfigurationError
from kafka_tail.common.logging import get_logger, log_with_context, set_log_context
from kafka_tail.decoding import DecodePipeline, PayloadDecoder
from kafka_tail.offsets import OffsetResolver
from kafka_tail.schemas.records import ConsumeRequest
from kafka_tail.sink import SynchronizedSink
from kafka_tail.workers.partition_pool import PartitionWorkerPool

logger = get_logger(__name__)


async def consume(
    request: ConsumeRequest,
    broker: BrokerClient,
    decoder: PayloadDecoder,
    sink: Optional[SynchronizedSink] = None,
    resolver: Optional[OffsetResolver] = None,
) -> None:
    """
    Consume every requested partition of a topic concurrently.

    Args:
        request: Topic, partitions, offset mode and output mode
        broker: Started broker client
        decoder: Payload decoder shared by all partitions
        sink: Output sink (default: stderr/stdout, honoring request.raw)
        resolver: Offset resolver (default: OffsetResolver with default budget)

    Raises:
        ConfigurationError: If a requested partition does not exist
        TopicNotFoundError: If the topic does not exist
        OffsetProbeTimeoutError: If a follow probe does not succeed in time
        PartitionAttachError: If a partition cannot be consumed
    """
    set_log_context(topic=request.topic)

    available = set(await broker.partitions(request.topic))
    missing = sorted(set(request.partitions) - available)
    if missing:
        raise ConfigurationError(
            f"Partitions {missing} do not exist on topic '{request.topic}'",
            context={"topic": request.topic, "available": sorted(available)},
        )

    resolver = resolver or OffsetResolver(broker)
    states = await resolver.resolve_all(
        request.topic, request.partitions, request.offset_mode
    )

    log_with_context(
        logger,
        logging.DEBUG,
        "Resolved start offsets",
        topic=request.topic,
        offset_mode=request.offset_mode.value,
        partitions={state.partition: state.start_offset for state in states},
    )

    sink = sink or SynchronizedSink(raw=request.raw)
    pipeline = DecodePipeline(decoder, raw=request.raw)
    pool = PartitionWorkerPool(broker, pipeline, sink, request.topic)
    await pool.run(states)


__all__ = [
    "consume",
]
