"""
Record schemas for the consume pipeline.

Contains Pydantic models for the consume request, resolved partition
offsets, records as fetched from the broker and records after decoding.
All models are frozen: they are built once and handed off, never mutated.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Kafka ListOffsets sentinels
OFFSET_NEWEST = -1
OFFSET_OLDEST = -2


class OffsetMode(str, Enum):
    """Where each partition starts reading."""

    OLDEST = "oldest"
    NEWEST = "newest"
    FOLLOW = "follow"


class ConsumeRequest(BaseModel):
    """Schema for one consume invocation.

    Attributes:
        topic: Topic to consume
        partitions: Partitions to consume, one worker each
        offset_mode: Start position mode applied to every partition
        raw: Print payloads only, without diagnostics or re-formatting
    """

    model_config = ConfigDict(frozen=True)

    topic: str = Field(..., min_length=1, description="Topic to consume")
    partitions: Tuple[int, ...] = Field(
        ..., min_length=1, description="Partitions to consume"
    )
    offset_mode: OffsetMode = Field(
        default=OffsetMode.OLDEST, description="Start position mode"
    )
    raw: bool = Field(default=False, description="Payload-only output")

    @field_validator("topic")
    @classmethod
    def validate_topic(cls, v: str) -> str:
        """Ensure the topic is not whitespace-only."""
        if not v.strip():
            raise ValueError("topic cannot be empty or whitespace")
        return v.strip()

    @field_validator("partitions")
    @classmethod
    def validate_partitions(cls, v: Tuple[int, ...]) -> Tuple[int, ...]:
        """Partitions must be distinct and non-negative; keep them sorted."""
        if any(p < 0 for p in v):
            raise ValueError("partition ids cannot be negative")
        if len(set(v)) != len(v):
            raise ValueError("partition ids must be distinct")
        return tuple(sorted(v))


class PartitionOffsetState(BaseModel):
    """Resolved start position for one partition.

    start_offset is either a concrete offset or one of the
    OFFSET_NEWEST / OFFSET_OLDEST sentinels.
    """

    model_config = ConfigDict(frozen=True)

    partition: int = Field(..., ge=0)
    start_offset: int = Field(..., ge=OFFSET_OLDEST)

    @property
    def is_sentinel(self) -> bool:
        return self.start_offset in (OFFSET_NEWEST, OFFSET_OLDEST)


class FetchedRecord(BaseModel):
    """A record as fetched from one partition."""

    model_config = ConfigDict(frozen=True)

    topic: str
    partition: int = Field(..., ge=0)
    offset: int = Field(..., ge=0)
    timestamp: datetime
    key: Optional[bytes] = None
    value: bytes = b""
    headers: Tuple[Tuple[bytes, bytes], ...] = ()


class DecodedRecord(BaseModel):
    """A record ready for rendering.

    Attributes:
        key: Decoded and formatted key, None when the record has no key
        headers: Header keys and decoded header values, in record order
        value: Payload bytes, formatted or raw
        errors: Diagnostics for anything that failed to decode
    """

    model_config = ConfigDict(frozen=True)

    partition: int
    offset: int
    timestamp: datetime
    key: Optional[str] = None
    headers: Tuple[Tuple[str, str], ...] = ()
    value: bytes = b""
    errors: Tuple[str, ...] = ()
