"""
Prometheus metrics for kafka_tail.

Provides instrumentation for:
- Message consumption rates per partition
- Decode errors by kind (value, key)
- Offset probe attempts by outcome
"""

from prometheus_client import Counter

messages_consumed_total = Counter(
    "kafka_tail_messages_consumed_total",
    "Total number of messages consumed and rendered",
    ["topic", "partition"],
)

messages_consumed_bytes = Counter(
    "kafka_tail_messages_consumed_bytes_total",
    "Total bytes of message values consumed",
    ["topic"],
)

decode_errors_total = Counter(
    "kafka_tail_decode_errors_total",
    "Total number of per-record decode errors",
    ["topic", "kind"],  # kind: value, key
)

offset_probe_attempts_total = Counter(
    "kafka_tail_offset_probe_attempts_total",
    "High watermark probe attempts against partition leaders",
    ["topic", "status"],  # status: success, error, timeout
)


def record_message_consumed(topic: str, partition: int, value_size: int) -> None:
    """Record a consumed message."""
    messages_consumed_total.labels(topic=topic, partition=str(partition)).inc()
    messages_consumed_bytes.labels(topic=topic).inc(value_size)


def record_decode_error(topic: str, kind: str) -> None:
    """Record a decode error that was recovered locally."""
    decode_errors_total.labels(topic=topic, kind=kind).inc()


def record_probe_attempt(topic: str, status: str) -> None:
    """Record the outcome of a single high watermark probe."""
    offset_probe_attempts_total.labels(topic=topic, status=status).inc()


__all__ = [
    "messages_consumed_total",
    "messages_consumed_bytes",
    "decode_errors_total",
    "offset_probe_attempts_total",
    "record_message_consumed",
    "record_decode_error",
    "record_probe_attempt",
]
