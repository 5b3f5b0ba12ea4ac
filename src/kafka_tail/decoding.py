"""
Record decoding for the consume pipeline.

Turns a FetchedRecord into a DecodedRecord:
- Value and key bytes go through a PayloadDecoder (schema registry Avro
  or pass-through, chosen once at startup)
- Values are re-formatted as indented JSON when possible
- Keys are rendered as single-line JSON when possible
- Header values are sniffed for the Azure Event Hubs AMQP encoding

Decoding never drops a record: failures become diagnostics on the
DecodedRecord and the raw bytes are kept.
"""

import json
import logging
from abc import ABC, abstractmethod
from datetime import date, datetime
from decimal import Decimal
from typing import Any, List, Optional, Tuple
from uuid import UUID

from confluent_kafka.schema_registry import SchemaRegistryClient
from confluent_kafka.schema_registry.avro import AvroDeserializer
from confluent_kafka.serialization import MessageField, SerializationContext

from kafka_tail.common.exceptions import SchemaDecodeError
from kafka_tail.common.logging import get_logger, log_with_context
from kafka_tail.common.metrics import record_decode_error
from kafka_tail.config import KafkaConfig
from kafka_tail.schemas.records import DecodedRecord, FetchedRecord

logger = get_logger(__name__)

# Event Hubs stores Kafka headers as AMQP-encoded values
AMQP_STR8_UTF8 = 0xA1
AMQP_TIMESTAMP = 0x83

# Confluent wire format: magic byte + 4-byte schema id + Avro body
CONFLUENT_MAGIC_BYTE = 0x00
CONFLUENT_HEADER_SIZE = 5

JSON_INDENT = 2


class PayloadDecoder(ABC):
    """
    Decodes key or value bytes into displayable bytes.

    A single instance is shared by every partition worker and called from
    worker threads, so implementations must be thread-safe.
    """

    @abstractmethod
    def decode(self, data: bytes) -> bytes:
        """
        Decode payload bytes.

        Raises:
            SchemaDecodeError: If the bytes cannot be decoded
        """


class PassThroughDecoder(PayloadDecoder):
    """Returns bytes unchanged. Used when no schema registry is configured."""

    def decode(self, data: bytes) -> bytes:
        return data


def _json_default(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class SchemaRegistryDecoder(PayloadDecoder):
    """
    Decodes Confluent-framed Avro payloads to JSON bytes.

    Schemas are fetched from the registry by the id embedded in each
    message and cached by the registry client. Bytes without the
    Confluent framing are not Avro and are returned unchanged.

    Usage:
        >>> client = SchemaRegistryClient({"url": "http://localhost:8081"})
        >>> decoder = SchemaRegistryDecoder(client, topic="orders")
        >>> decoder.decode(message_value)
        b'{"id": 1, "status": "NEW"}'
    """

    def __init__(self, schema_registry_client: SchemaRegistryClient, topic: str):
        self.topic = topic
        self._deserializer = AvroDeserializer(schema_registry_client)
        self._ctx = SerializationContext(topic, MessageField.VALUE)

    @staticmethod
    def is_framed(data: bytes) -> bool:
        return len(data) >= CONFLUENT_HEADER_SIZE and data[0] == CONFLUENT_MAGIC_BYTE

    def decode(self, data: bytes) -> bytes:
        if not self.is_framed(data):
            return data

        schema_id = int.from_bytes(data[1:CONFLUENT_HEADER_SIZE], "big")
        try:
            decoded = self._deserializer(data, self._ctx)
            return json.dumps(decoded, default=_json_default, ensure_ascii=False).encode(
                "utf-8"
            )
        except Exception as e:
            # Registry lookups, Avro body errors and JSON conversion all
            # surface as a per-record decode failure
            raise SchemaDecodeError(
                f"schema id {schema_id}: {e}",
                cause=e,
                context={"topic": self.topic, "schema_id": schema_id},
            ) from e


def build_decoder(config: KafkaConfig, topic: str) -> PayloadDecoder:
    """
    Select the payload decoder for this run.

    Returns a SchemaRegistryDecoder when a registry URL is configured,
    otherwise a PassThroughDecoder.
    """
    if not config.schema_registry_url:
        return PassThroughDecoder()

    log_with_context(
        logger,
        logging.DEBUG,
        "Using schema registry for Avro decoding",
        schema_registry_url=config.schema_registry_url,
    )
    client = SchemaRegistryClient({"url": config.schema_registry_url})
    return SchemaRegistryDecoder(client, topic)


def _as_text(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def decode_header_value(value: bytes) -> str:
    """
    Best-effort decode of a header value.

    Recognizes the two AMQP encodings Azure Event Hubs uses for Kafka
    headers; this is a first-byte sniff, not a general format detector:
        0xA1 <len> <bytes...>   str8-utf8, rendered as the text
        0x83 <8 bytes>          timestamp, rendered as a decimal uint64

    Anything else, including truncated encodings and empty values, is
    rendered as text verbatim. Never raises.
    """
    if value:
        marker = value[0]
        if marker == AMQP_STR8_UTF8 and len(value) >= 2:
            end = 2 + value[1]
            if len(value) >= end:
                return _as_text(value[2:end])
        elif marker == AMQP_TIMESTAMP and len(value) >= 9:
            return str(int.from_bytes(value[1:9], "big"))
    return _as_text(value)


def format_value(data: bytes) -> bytes:
    """Indent JSON payloads; anything else is returned verbatim."""
    try:
        parsed = json.loads(data.decode("utf-8"))
    except ValueError:
        return data
    return json.dumps(parsed, indent=JSON_INDENT, ensure_ascii=False).encode("utf-8")


def format_key(data: bytes) -> str:
    """Render a key as single-line JSON, or as text when it is not JSON."""
    try:
        parsed = json.loads(data.decode("utf-8"))
    except ValueError:
        return _as_text(data)
    return json.dumps(parsed, ensure_ascii=False)


class DecodePipeline:
    """
    Decodes fetched records for display.

    In raw mode only the value is decoded and it is not re-formatted;
    headers and key are not shown in raw mode so they are skipped.
    """

    def __init__(self, decoder: PayloadDecoder, raw: bool = False):
        self.decoder = decoder
        self.raw = raw

    def decode(self, record: FetchedRecord) -> DecodedRecord:
        errors: List[str] = []

        value = record.value
        if value:
            value = self._decode_bytes(record, value, "value", errors)
        if not self.raw:
            value = format_value(value)

        headers: Tuple[Tuple[str, str], ...] = ()
        key: Optional[str] = None
        if not self.raw:
            headers = tuple(
                (_as_text(hdr_key), decode_header_value(hdr_value))
                for hdr_key, hdr_value in record.headers
            )
            if record.key:
                key = format_key(self._decode_bytes(record, record.key, "key", errors))

        return DecodedRecord(
            partition=record.partition,
            offset=record.offset,
            timestamp=record.timestamp,
            key=key,
            headers=headers,
            value=value,
            errors=tuple(errors),
        )

    def _decode_bytes(
        self, record: FetchedRecord, data: bytes, kind: str, errors: List[str]
    ) -> bytes:
        try:
            return self.decoder.decode(data)
        except Exception as e:
            # Any decoder failure is a per-record diagnostic, never fatal
            errors.append(f"could not decode Avro data: {e}")
            record_decode_error(record.topic, kind)
            log_with_context(
                logger,
                logging.DEBUG,
                f"Could not decode record {kind}",
                partition=record.partition,
                offset=record.offset,
                error_message=str(e),
            )
            return data


__all__ = [
    "PayloadDecoder",
    "PassThroughDecoder",
    "SchemaRegistryDecoder",
    "build_decoder",
    "decode_header_value",
    "format_value",
    "format_key",
    "DecodePipeline",
]
