"""Partition workers."""

from kafka_tail.workers.partition_pool import PartitionWorkerPool

__all__ = [
    "PartitionWorkerPool",
]
