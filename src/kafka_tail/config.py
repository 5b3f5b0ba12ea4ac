"""kafka_tail configuration from environment variables."""

import os
from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class KafkaConfig:
    """Kafka connection, schema registry and offset probe configuration.

    Load from environment using KafkaConfig.from_env().
    All timing values in milliseconds unless otherwise noted.
    """

    # Connection
    bootstrap_servers: str
    security_protocol: str = "PLAINTEXT"
    sasl_mechanism: str = "PLAIN"

    # SASL_PLAIN credentials (for Event Hubs or basic auth)
    sasl_plain_username: str = ""
    sasl_plain_password: str = ""

    # Consumer settings
    request_timeout_ms: int = 40000
    fetch_max_wait_ms: int = 500
    client_id: str = "kafka-tail"

    # Schema registry (Avro decoding disabled when unset)
    schema_registry_url: Optional[str] = None

    # Follow-mode high watermark probe
    offset_probe_timeout_ms: int = 500
    offset_probe_backoff_ms: int = 25
    offset_probe_max_attempts: int = 20

    @classmethod
    def from_env(cls) -> "KafkaConfig":
        """Load configuration from environment variables.

        Required environment variables:
            KAFKA_BOOTSTRAP_SERVERS: Kafka broker addresses

        Optional environment variables (with defaults):
            KAFKA_SECURITY_PROTOCOL: PLAINTEXT (default)
            KAFKA_SASL_MECHANISM: PLAIN (default)
            KAFKA_SASL_PLAIN_USERNAME / KAFKA_SASL_PLAIN_PASSWORD
            KAFKA_REQUEST_TIMEOUT_MS: 40000 (default)
            KAFKA_FETCH_MAX_WAIT_MS: 500 (default)
            KAFKA_CLIENT_ID: kafka-tail (default)
            SCHEMA_REGISTRY_URL: enables Avro decoding when set
            OFFSET_PROBE_TIMEOUT_MS: 500 (default)
            OFFSET_PROBE_BACKOFF_MS: 25 (default)
            OFFSET_PROBE_MAX_ATTEMPTS: 20 (default)

        Raises:
            ValueError: If required environment variables are missing
        """
        bootstrap_servers = os.getenv("KAFKA_BOOTSTRAP_SERVERS")
        if not bootstrap_servers:
            raise ValueError("KAFKA_BOOTSTRAP_SERVERS environment variable is required")

        config = cls(
            # Connection
            bootstrap_servers=bootstrap_servers,
            security_protocol=os.getenv("KAFKA_SECURITY_PROTOCOL", "PLAINTEXT"),
            sasl_mechanism=os.getenv("KAFKA_SASL_MECHANISM", "PLAIN"),
            sasl_plain_username=os.getenv("KAFKA_SASL_PLAIN_USERNAME", ""),
            sasl_plain_password=os.getenv("KAFKA_SASL_PLAIN_PASSWORD", ""),

            # Consumer settings
            request_timeout_ms=int(os.getenv("KAFKA_REQUEST_TIMEOUT_MS", "40000")),
            fetch_max_wait_ms=int(os.getenv("KAFKA_FETCH_MAX_WAIT_MS", "500")),
            client_id=os.getenv("KAFKA_CLIENT_ID", "kafka-tail"),

            # Schema registry
            schema_registry_url=os.getenv("SCHEMA_REGISTRY_URL") or None,

            # Offset probe
            offset_probe_timeout_ms=int(os.getenv("OFFSET_PROBE_TIMEOUT_MS", "500")),
            offset_probe_backoff_ms=int(os.getenv("OFFSET_PROBE_BACKOFF_MS", "25")),
            offset_probe_max_attempts=int(os.getenv("OFFSET_PROBE_MAX_ATTEMPTS", "20")),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Check value ranges.

        Raises:
            ValueError: If a timing or attempt setting is out of range
        """
        if self.offset_probe_timeout_ms <= 0:
            raise ValueError("OFFSET_PROBE_TIMEOUT_MS must be positive")
        if self.offset_probe_backoff_ms < 0:
            raise ValueError("OFFSET_PROBE_BACKOFF_MS cannot be negative")
        if self.offset_probe_max_attempts < 1:
            raise ValueError("OFFSET_PROBE_MAX_ATTEMPTS must be at least 1")

    def to_consumer_config(self) -> Dict[str, Any]:
        """Build keyword arguments for aiokafka.AIOKafkaConsumer.

        Consumers are standalone: no group id and no offset commits.
        """
        consumer_config: Dict[str, Any] = {
            "bootstrap_servers": self.bootstrap_servers,
            "client_id": self.client_id,
            "group_id": None,
            "enable_auto_commit": False,
            "request_timeout_ms": self.request_timeout_ms,
            "fetch_max_wait_ms": self.fetch_max_wait_ms,
        }

        # Configure security based on protocol
        if self.security_protocol != "PLAINTEXT":
            consumer_config["security_protocol"] = self.security_protocol
            if self.security_protocol.startswith("SASL"):
                consumer_config["sasl_mechanism"] = self.sasl_mechanism
                consumer_config["sasl_plain_username"] = self.sasl_plain_username
                consumer_config["sasl_plain_password"] = self.sasl_plain_password

        return consumer_config

    @property
    def probe_timeout_seconds(self) -> float:
        return self.offset_probe_timeout_ms / 1000

    @property
    def probe_backoff_seconds(self) -> float:
        return self.offset_probe_backoff_ms / 1000
