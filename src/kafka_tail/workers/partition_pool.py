"""
Partition worker pool.

Runs one fetch loop per partition as an asyncio task. Each loop pulls
records from its partition in order, decodes them and writes them through
the shared sink. Decode and write run in a worker thread so a slow schema
registry lookup or a blocked terminal does not stall other partitions.

The pool completes when every partition stream ends. If one worker fails
the others are cancelled and the first error is raised. Cancelling the
task awaiting run() cancels and awaits every worker the same way.
"""

import asyncio
import logging
from contextlib import aclosing
from typing import Sequence

from kafka_tail.broker import BrokerClient
from kafka_tail.common.logging import (
    get_logger,
    log_exception,
    log_with_context,
    set_log_context,
)
from kafka_tail.common.metrics import record_message_consumed
from kafka_tail.decoding import DecodePipeline
from kafka_tail.schemas.records import FetchedRecord, PartitionOffsetState
from kafka_tail.sink import SynchronizedSink

logger = get_logger(__name__)


class PartitionWorkerPool:
    """
    One independent consumer task per partition, joined at the end.

    Usage:
        >>> pool = PartitionWorkerPool(broker, pipeline, sink, topic="orders")
        >>> await pool.run(states)
    """

    def __init__(
        self,
        broker: BrokerClient,
        pipeline: DecodePipeline,
        sink: SynchronizedSink,
        topic: str,
    ):
        self.broker = broker
        self.pipeline = pipeline
        self.sink = sink
        self.topic = topic

    async def run(self, states: Sequence[PartitionOffsetState]) -> None:
        """
        Start a worker for every partition and wait for all of them.

        Raises:
            ValueError: If a partition appears twice
            Exception: The first error raised by any worker
        """
        partitions = [state.partition for state in states]
        if len(set(partitions)) != len(partitions):
            raise ValueError("Each partition can only have one worker")

        log_with_context(
            logger,
            logging.DEBUG,
            "Starting partition workers",
            topic=self.topic,
            partitions=partitions,
        )

        tasks = [
            asyncio.create_task(
                self._consume_partition(state), name=f"partition-{state.partition}"
            )
            for state in states
        ]

        try:
            await asyncio.gather(*tasks)
        except BaseException:
            # Covers a failing worker and cancellation of run() itself
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _consume_partition(self, state: PartitionOffsetState) -> None:
        set_log_context(topic=self.topic, partition=state.partition)
        count = 0

        try:
            stream = self.broker.fetch_stream(
                self.topic, state.partition, state.start_offset
            )
            async with aclosing(stream):
                async for record in stream:
                    await asyncio.to_thread(self._handle_record, record)
                    count += 1
        except asyncio.CancelledError:
            log_with_context(
                logger,
                logging.DEBUG,
                "Partition worker cancelled",
                partition=state.partition,
            )
            raise
        except Exception as e:
            log_exception(
                logger,
                e,
                "Partition worker failed",
                level=logging.DEBUG,
                include_traceback=False,
                partition=state.partition,
            )
            raise

        log_with_context(
            logger,
            logging.DEBUG,
            f"Partition stream closed after {count} record(s)",
            partition=state.partition,
        )

    def _handle_record(self, record: FetchedRecord) -> None:
        decoded = self.pipeline.decode(record)
        self.sink.write(decoded)
        record_message_consumed(self.topic, record.partition, len(record.value))


__all__ = [
    "PartitionWorkerPool",
]
