"""Tests for Kafka configuration."""

import pytest

from kafka_tail.config import KafkaConfig

CONFIG_ENV_VARS = [
    "KAFKA_SECURITY_PROTOCOL",
    "KAFKA_SASL_MECHANISM",
    "KAFKA_SASL_PLAIN_USERNAME",
    "KAFKA_SASL_PLAIN_PASSWORD",
    "KAFKA_REQUEST_TIMEOUT_MS",
    "KAFKA_FETCH_MAX_WAIT_MS",
    "KAFKA_CLIENT_ID",
    "SCHEMA_REGISTRY_URL",
    "OFFSET_PROBE_TIMEOUT_MS",
    "OFFSET_PROBE_BACKOFF_MS",
    "OFFSET_PROBE_MAX_ATTEMPTS",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestKafkaConfig:
    """Test KafkaConfig dataclass and environment loading."""

    def test_from_env_minimal_required(self, clean_env):
        """Test loading with only required environment variables."""
        clean_env.setenv("KAFKA_BOOTSTRAP_SERVERS", "kafka1:9093,kafka2:9093")

        config = KafkaConfig.from_env()

        assert config.bootstrap_servers == "kafka1:9093,kafka2:9093"
        assert config.security_protocol == "PLAINTEXT"
        assert config.sasl_mechanism == "PLAIN"
        assert config.schema_registry_url is None
        assert config.offset_probe_timeout_ms == 500
        assert config.offset_probe_backoff_ms == 25
        assert config.offset_probe_max_attempts == 20

    def test_from_env_missing_required_raises(self, clean_env):
        """Test that missing required variables raises ValueError."""
        clean_env.delenv("KAFKA_BOOTSTRAP_SERVERS", raising=False)

        with pytest.raises(ValueError, match="KAFKA_BOOTSTRAP_SERVERS"):
            KafkaConfig.from_env()

    def test_from_env_all_variables(self, clean_env):
        """Test loading all environment variables."""
        env_vars = {
            "KAFKA_BOOTSTRAP_SERVERS": "ns.servicebus.windows.net:9093",
            "KAFKA_SECURITY_PROTOCOL": "SASL_SSL",
            "KAFKA_SASL_MECHANISM": "PLAIN",
            "KAFKA_SASL_PLAIN_USERNAME": "$ConnectionString",
            "KAFKA_SASL_PLAIN_PASSWORD": "Endpoint=sb://ns/;SharedAccessKey=abc",
            "KAFKA_REQUEST_TIMEOUT_MS": "60000",
            "KAFKA_FETCH_MAX_WAIT_MS": "250",
            "KAFKA_CLIENT_ID": "tail-debug",
            "SCHEMA_REGISTRY_URL": "http://registry:8081",
            "OFFSET_PROBE_TIMEOUT_MS": "2000",
            "OFFSET_PROBE_BACKOFF_MS": "100",
            "OFFSET_PROBE_MAX_ATTEMPTS": "5",
        }
        for key, value in env_vars.items():
            clean_env.setenv(key, value)

        config = KafkaConfig.from_env()

        assert config.security_protocol == "SASL_SSL"
        assert config.sasl_plain_username == "$ConnectionString"
        assert config.request_timeout_ms == 60000
        assert config.fetch_max_wait_ms == 250
        assert config.client_id == "tail-debug"
        assert config.schema_registry_url == "http://registry:8081"
        assert config.probe_timeout_seconds == 2.0
        assert config.probe_backoff_seconds == 0.1
        assert config.offset_probe_max_attempts == 5

    def test_empty_registry_url_disables_decoding(self, clean_env):
        clean_env.setenv("KAFKA_BOOTSTRAP_SERVERS", "kafka:9092")
        clean_env.setenv("SCHEMA_REGISTRY_URL", "")

        assert KafkaConfig.from_env().schema_registry_url is None

    @pytest.mark.parametrize(
        "name,value",
        [
            ("OFFSET_PROBE_TIMEOUT_MS", "0"),
            ("OFFSET_PROBE_BACKOFF_MS", "-1"),
            ("OFFSET_PROBE_MAX_ATTEMPTS", "0"),
        ],
    )
    def test_invalid_probe_settings_raise(self, clean_env, name, value):
        clean_env.setenv("KAFKA_BOOTSTRAP_SERVERS", "kafka:9092")
        clean_env.setenv(name, value)

        with pytest.raises(ValueError, match=name):
            KafkaConfig.from_env()

    def test_non_integer_setting_raises(self, clean_env):
        clean_env.setenv("KAFKA_BOOTSTRAP_SERVERS", "kafka:9092")
        clean_env.setenv("OFFSET_PROBE_TIMEOUT_MS", "soon")

        with pytest.raises(ValueError):
            KafkaConfig.from_env()


class TestConsumerConfig:
    """Test KafkaConfig.to_consumer_config()."""

    def test_plaintext_is_standalone_consumer(self):
        config = KafkaConfig(bootstrap_servers="localhost:9092")

        consumer_config = config.to_consumer_config()

        assert consumer_config["bootstrap_servers"] == "localhost:9092"
        assert consumer_config["group_id"] is None
        assert consumer_config["enable_auto_commit"] is False
        assert "security_protocol" not in consumer_config
        assert "sasl_plain_username" not in consumer_config

    def test_sasl_ssl_includes_credentials(self):
        config = KafkaConfig(
            bootstrap_servers="ns.servicebus.windows.net:9093",
            security_protocol="SASL_SSL",
            sasl_plain_username="$ConnectionString",
            sasl_plain_password="secret",
        )

        consumer_config = config.to_consumer_config()

        assert consumer_config["security_protocol"] == "SASL_SSL"
        assert consumer_config["sasl_mechanism"] == "PLAIN"
        assert consumer_config["sasl_plain_username"] == "$ConnectionString"
        assert consumer_config["sasl_plain_password"] == "secret"

    def test_ssl_without_sasl(self):
        config = KafkaConfig(bootstrap_servers="kafka:9093", security_protocol="SSL")

        consumer_config = config.to_consumer_config()

        assert consumer_config["security_protocol"] == "SSL"
        assert "sasl_mechanism" not in consumer_config
