"""
Record schemas.

Pydantic models for the consume pipeline:
    records.py  - ConsumeRequest, PartitionOffsetState, FetchedRecord,
                  DecodedRecord and the offset sentinels
"""

from kafka_tail.schemas.records import (
    OFFSET_NEWEST,
    OFFSET_OLDEST,
    ConsumeRequest,
    DecodedRecord,
    FetchedRecord,
    OffsetMode,
    PartitionOffsetState,
)

__all__ = [
    "OFFSET_NEWEST",
    "OFFSET_OLDEST",
    "ConsumeRequest",
    "DecodedRecord",
    "FetchedRecord",
    "OffsetMode",
    "PartitionOffsetState",
]
