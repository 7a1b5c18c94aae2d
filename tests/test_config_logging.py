"""Tests for configuration and logging."""

import io
import json
import logging
import os
import sys
from decimal import Decimal
from unittest.mock import patch

import pytest

from caisse_engine.config import EngineConfig, KafkaConfig, PolicyConfig, PostgresConfig
from caisse_engine.engine.amortization import DEFAULT_MAX_DURATION
from caisse_engine.engine.penalty import DEFAULT_AFTER_DAYS, GRACE_DAYS
from caisse_engine.logging import JsonFormatter, get_logger, setup_logging


class TestKafkaConfig:
    """Tests for KafkaConfig."""

    def test_default_values(self) -> None:
        """Test default configuration values."""
        config = KafkaConfig()

        assert config.bootstrap_servers == "localhost:9092"
        assert config.acks == "all"
        assert config.topic == "caisse.contract-events"

    def test_to_dict(self) -> None:
        """Test conversion to confluent-kafka config dict."""
        config = KafkaConfig(bootstrap_servers="kafka:9092", compression="gzip")

        assert config.to_dict() == {
            "bootstrap.servers": "kafka:9092",
            "acks": "all",
            "batch.size": 16384,
            "linger.ms": 5,
            "compression.type": "gzip",
            "retries": 3,
        }


class TestPostgresConfig:
    """Tests for PostgresConfig."""

    def test_connection_string(self) -> None:
        """Test connection string generation."""
        config = PostgresConfig(host="db", port=5433, database="caisse", user="app", password="secret")
        assert config.connection_string == "postgresql://app:secret@db:5433/caisse"


class TestPolicyConfig:
    """Tests for PolicyConfig."""

    def test_defaults_match_engine_constants(self) -> None:
        """Test reported thresholds agree with the engine."""
        policy = PolicyConfig()

        assert policy.grace_days == GRACE_DAYS
        assert policy.default_after_days == DEFAULT_AFTER_DAYS
        assert policy.max_amortization_duration == DEFAULT_MAX_DURATION
        assert policy.final_refund_window_days == 30
        assert policy.early_refund_window_days == 45
        assert policy.libre_minimum_amount == Decimal("100000")

    def test_frozen(self) -> None:
        """Test policy values cannot be mutated."""
        policy = PolicyConfig()
        with pytest.raises(AttributeError):
            policy.grace_days = 5  # type: ignore[misc]


class TestEngineConfig:
    """Tests for EngineConfig."""

    def test_default_values(self) -> None:
        """Test default aggregate configuration."""
        config = EngineConfig()

        assert config.log_level == "INFO"
        assert config.log_format == "standard"
        assert config.policy == PolicyConfig()

    def test_from_env_default(self) -> None:
        """Test from_env without variables set."""
        with patch.dict(os.environ, {}, clear=True):
            config = EngineConfig.from_env()

        assert config.kafka.bootstrap_servers == "localhost:9092"
        assert config.postgres.database == "caisse"
        assert config.policy.early_refund_window_days == 45

    def test_from_env_custom(self) -> None:
        """Test from_env reads CAISSE_*, KAFKA_*, POSTGRES_* and LOG_* variables."""
        env = {
            "CAISSE_EARLY_REFUND_WINDOW_DAYS": "60",
            "CAISSE_LIBRE_MINIMUM_AMOUNT": "150000",
            "CAISSE_MAX_AMORTIZATION_DURATION": "60",
            "KAFKA_BOOTSTRAP_SERVERS": "kafka:29092",
            "KAFKA_TOPIC": "caisse.events",
            "POSTGRES_HOST": "pg",
            "POSTGRES_PORT": "5433",
            "LOG_LEVEL": "DEBUG",
            "LOG_FORMAT": "json",
        }
        with patch.dict(os.environ, env, clear=True):
            config = EngineConfig.from_env()

        assert config.policy.early_refund_window_days == 60
        assert config.policy.libre_minimum_amount == Decimal("150000")
        assert config.policy.max_amortization_duration == 60
        assert config.kafka.bootstrap_servers == "kafka:29092"
        assert config.kafka.topic == "caisse.events"
        assert config.postgres.host == "pg"
        assert config.postgres.port == 5433
        assert config.log_level == "DEBUG"
        assert config.log_format == "json"


class TestSetupLogging:
    """Tests for setup_logging function."""

    def test_setup_logging_default(self) -> None:
        """Test default logging setup."""
        setup_logging()

        assert logging.getLogger("caisse_engine").level == logging.INFO

    def test_setup_logging_debug(self) -> None:
        """Test debug level logging setup."""
        setup_logging(level="DEBUG")

        assert logging.getLogger().level == logging.DEBUG

    def test_setup_logging_invalid_level(self) -> None:
        """Test logging with invalid level defaults to INFO."""
        setup_logging(level="INVALID")

        assert logging.getLogger().level == logging.INFO

    def test_setup_logging_json_format(self) -> None:
        """Test JSON format logging."""
        setup_logging(format_type="json")

        assert any(isinstance(h.formatter, JsonFormatter) for h in logging.getLogger().handlers)

    def test_setup_logging_replaces_handlers(self) -> None:
        """Test that setup_logging replaces existing handlers."""
        root = logging.getLogger()
        root.addHandler(logging.StreamHandler())
        root.addHandler(logging.StreamHandler())

        setup_logging()

        assert len(root.handlers) == 1

    def test_setup_logging_stream(self) -> None:
        """Test records are written to the given stream."""
        buffer = io.StringIO()
        setup_logging(format_type="json", stream=buffer)

        get_logger("caisse_engine.test").info(
            "Contract %s: %s -> %s",
            "ctr-1",
            "DRAFT",
            "ACTIVE",
            extra={"extra": {"contract_id": "ctr-1"}},
        )

        data = json.loads(buffer.getvalue().splitlines()[-1])
        assert data["message"] == "Contract ctr-1: DRAFT -> ACTIVE"
        assert data["contract_id"] == "ctr-1"

    def test_external_loggers_quieted(self) -> None:
        """Test noisy libraries are raised to WARNING."""
        setup_logging(level="DEBUG")

        assert logging.getLogger("confluent_kafka").level == logging.WARNING
        assert logging.getLogger("psycopg").level == logging.WARNING
        assert logging.getLogger("faker").level == logging.WARNING


class TestJsonFormatter:
    """Tests for JsonFormatter."""

    def _record(self, **kwargs) -> logging.LogRecord:
        defaults = dict(
            name="caisse_engine.services.contracts",
            level=logging.INFO,
            pathname="/path/to/file.py",
            lineno=42,
            msg="Recorded installment %d of %s",
            args=(3, "ctr-1"),
            exc_info=None,
        )
        defaults.update(kwargs)
        return logging.LogRecord(**defaults)

    def test_format_basic(self) -> None:
        """Test basic log formatting."""
        data = json.loads(JsonFormatter().format(self._record()))

        assert data["level"] == "INFO"
        assert data["logger"] == "caisse_engine.services.contracts"
        assert data["message"] == "Recorded installment 3 of ctr-1"
        assert "timestamp" in data

    def test_format_with_exception(self) -> None:
        """Test formatting with exception info."""
        try:
            raise ValueError("Test error")
        except ValueError:
            exc_info = sys.exc_info()

        data = json.loads(JsonFormatter().format(self._record(level=logging.ERROR, exc_info=exc_info)))

        assert data["level"] == "ERROR"
        assert "ValueError" in data["exception"]

    def test_format_with_extra(self) -> None:
        """Test contract context passed as extra fields."""
        record = self._record()
        record.extra = {"contract_id": "ctr-1", "amount": Decimal("50000")}

        data = json.loads(JsonFormatter().format(record))

        assert data["contract_id"] == "ctr-1"
        assert data["amount"] == "50000"


class TestGetLogger:
    """Tests for get_logger function."""

    def test_get_logger(self) -> None:
        """Test getting a logger."""
        logger = get_logger("caisse_engine.test")

        assert isinstance(logger, logging.Logger)
        assert logger.name == "caisse_engine.test"

    def test_get_logger_same_instance(self) -> None:
        """Test that get_logger returns same instance for same name."""
        assert get_logger("test.same") is get_logger("test.same")


class TestPackageInit:
    """Tests for caisse_engine __init__.py."""

    def test_version_exported(self) -> None:
        """Test that __version__ is exported."""
        from caisse_engine import __version__

        assert isinstance(__version__, str)
