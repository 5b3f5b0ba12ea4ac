"""
Start offset resolution per partition.

oldest and newest map straight to the broker sentinels. follow asks the
partition leader for its high watermark and starts one record before it,
so the most recently written record is shown first.

The follow probe retries until it succeeds or a fixed deadline passes.
The deadline is taken once from the loop's monotonic clock and checked
before every attempt; each attempt waits at most the remaining budget,
and the attempt count is capped. Permanent errors stop the retries early.
"""

import asyncio
import logging
from typing import Iterable, List, Optional

from kafka_tail.broker import BrokerClient
from kafka_tail.common.exceptions import (
    OffsetProbeTimeoutError,
    classify_exception,
    is_retryable,
)
from kafka_tail.common.logging import get_logger, log_with_context
from kafka_tail.common.metrics import record_probe_attempt
from kafka_tail.schemas.records import (
    OFFSET_NEWEST,
    OFFSET_OLDEST,
    OffsetMode,
    PartitionOffsetState,
)

logger = get_logger(__name__)

DEFAULT_PROBE_TIMEOUT_SECONDS = 0.5
DEFAULT_RETRY_BACKOFF_SECONDS = 0.025
DEFAULT_MAX_ATTEMPTS = 20


class OffsetResolver:
    """
    Maps an offset mode to a concrete start offset for each partition.

    Usage:
        >>> resolver = OffsetResolver(broker)
        >>> states = await resolver.resolve_all("orders", [0, 1], OffsetMode.FOLLOW)
    """

    def __init__(
        self,
        broker: BrokerClient,
        probe_timeout: float = DEFAULT_PROBE_TIMEOUT_SECONDS,
        retry_backoff: float = DEFAULT_RETRY_BACKOFF_SECONDS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        """
        Args:
            broker: Broker client used for high watermark probes
            probe_timeout: Total time budget for one partition's probe, seconds
            retry_backoff: Pause between failed attempts, seconds
            max_attempts: Upper bound on attempts within the budget
        """
        if probe_timeout <= 0:
            raise ValueError("probe_timeout must be positive")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.broker = broker
        self.probe_timeout = probe_timeout
        self.retry_backoff = max(retry_backoff, 0.0)
        self.max_attempts = max_attempts

    async def resolve(
        self, topic: str, partition: int, mode: OffsetMode
    ) -> PartitionOffsetState:
        """
        Resolve the start offset of one partition.

        Raises:
            OffsetProbeTimeoutError: If follow mode cannot reach the leader in time
        """
        if mode == OffsetMode.OLDEST:
            return PartitionOffsetState(partition=partition, start_offset=OFFSET_OLDEST)
        if mode == OffsetMode.NEWEST:
            return PartitionOffsetState(partition=partition, start_offset=OFFSET_NEWEST)

        high_watermark = await self.probe_with_deadline(topic, partition)
        follow_offset = high_watermark - 1
        if follow_offset <= 0:
            log_with_context(
                logger,
                logging.DEBUG,
                "No earlier record to follow, starting at newest",
                topic=topic,
                partition=partition,
                high_watermark=high_watermark,
            )
            return PartitionOffsetState(partition=partition, start_offset=OFFSET_NEWEST)

        log_with_context(
            logger,
            logging.INFO,
            f"Starting on partition {partition} with offset {follow_offset}",
            topic=topic,
            partition=partition,
            start_offset=follow_offset,
        )
        return PartitionOffsetState(partition=partition, start_offset=follow_offset)

    async def resolve_all(
        self, topic: str, partitions: Iterable[int], mode: OffsetMode
    ) -> List[PartitionOffsetState]:
        """
        Resolve every partition concurrently; results follow partition order.

        If any partition fails, the others are cancelled and awaited before
        the error propagates, so no probe outlives the call.
        """
        tasks = [
            asyncio.create_task(
                self.resolve(topic, partition, mode), name=f"resolve-{partition}"
            )
            for partition in partitions
        ]

        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def probe_with_deadline(self, topic: str, partition: int) -> int:
        """
        Probe the high watermark until success or the deadline passes.

        A probe that raises is retried after the backoff, whatever the
        exception type, unless the error is permanent. Only an attempt
        still pending when the budget runs out ends the loop as a timeout.

        Raises:
            OffsetProbeTimeoutError: Carrying the last error seen, if any
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.probe_timeout
        last_error: Optional[Exception] = None
        attempts = 0

        while attempts < self.max_attempts:
            remaining = deadline - loop.time()
            if remaining <= 0:
                break

            attempts += 1
            probe = asyncio.ensure_future(
                self.broker.probe_high_watermark(topic, partition)
            )
            try:
                done, _ = await asyncio.wait({probe}, timeout=remaining)
            except asyncio.CancelledError:
                probe.cancel()
                await asyncio.gather(probe, return_exceptions=True)
                raise

            if not done:
                probe.cancel()
                await asyncio.gather(probe, return_exceptions=True)
                record_probe_attempt(topic, "timeout")
                break

            try:
                high_watermark = probe.result()
            except Exception as e:
                record_probe_attempt(topic, "error")
                last_error = e
                log_with_context(
                    logger,
                    logging.DEBUG,
                    "High watermark probe failed",
                    topic=topic,
                    partition=partition,
                    attempt=attempts,
                    error_category=classify_exception(e).value,
                    error_message=str(e),
                )
                if not is_retryable(e) or attempts >= self.max_attempts:
                    break
                pause = min(self.retry_backoff, deadline - loop.time())
                if pause > 0:
                    await asyncio.sleep(pause)
                continue

            record_probe_attempt(topic, "success")
            return high_watermark

        raise OffsetProbeTimeoutError(topic, partition, attempts, cause=last_error)


__all__ = [
    "OffsetResolver",
]
