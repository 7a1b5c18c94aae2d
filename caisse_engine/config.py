"""Configuration management for caisse-engine."""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any


@dataclass
class KafkaConfig:
    """Kafka producer configuration for contract notifications."""

    bootstrap_servers: str = "localhost:9092"
    acks: str = "all"
    batch_size: int = 16384
    linger_ms: int = 5
    compression: str = "snappy"
    retries: int = 3
    topic: str = "caisse.contract-events"

    def to_dict(self) -> dict[str, Any]:
        """Convert to confluent-kafka config dict."""
        return {
            "bootstrap.servers": self.bootstrap_servers,
            "acks": self.acks,
            "batch.size": self.batch_size,
            "linger.ms": self.linger_ms,
            "compression.type": self.compression,
            "retries": self.retries,
        }


@dataclass
class PostgresConfig:
    """PostgreSQL connection configuration."""

    host: str = "localhost"
    port: int = 5432
    database: str = "caisse"
    user: str = "postgres"
    password: str = "postgres"

    @property
    def connection_string(self) -> str:
        """Get connection string."""
        return f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/{self.database}"


@dataclass(frozen=True)
class PolicyConfig:
    """Business policy values consumed by the contract service.

    The lateness thresholds are fixed policy and mirror the constants in
    :mod:`caisse_engine.engine.penalty`; they are exposed here for
    reporting only. The refund windows and the LIBRE minimum are tunable.
    """

    grace_days: int = 3
    default_after_days: int = 12
    bonus_grace_months: int = 3
    max_amortization_duration: int = 120
    final_refund_window_days: int = 30
    early_refund_window_days: int = 45
    libre_minimum_amount: Decimal = Decimal("100000")


@dataclass
class EngineConfig:
    """Main configuration for caisse-engine."""

    policy: PolicyConfig = field(default_factory=PolicyConfig)
    kafka: KafkaConfig = field(default_factory=KafkaConfig)
    postgres: PostgresConfig = field(default_factory=PostgresConfig)
    log_level: str = "INFO"
    log_format: str = "standard"

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Create config from environment variables."""
        import os

        policy = PolicyConfig(
            max_amortization_duration=int(os.getenv("CAISSE_MAX_AMORTIZATION_DURATION", "120")),
            final_refund_window_days=int(os.getenv("CAISSE_FINAL_REFUND_WINDOW_DAYS", "30")),
            early_refund_window_days=int(os.getenv("CAISSE_EARLY_REFUND_WINDOW_DAYS", "45")),
            libre_minimum_amount=Decimal(os.getenv("CAISSE_LIBRE_MINIMUM_AMOUNT", "100000")),
        )

        kafka = KafkaConfig(
            bootstrap_servers=os.getenv("KAFKA_BOOTSTRAP_SERVERS", "localhost:9092"),
            acks=os.getenv("KAFKA_ACKS", "all"),
            topic=os.getenv("KAFKA_TOPIC", "caisse.contract-events"),
        )

        postgres = PostgresConfig(
            host=os.getenv("POSTGRES_HOST", "localhost"),
            port=int(os.getenv("POSTGRES_PORT", "5432")),
            database=os.getenv("POSTGRES_DB", "caisse"),
            user=os.getenv("POSTGRES_USER", "postgres"),
            password=os.getenv("POSTGRES_PASSWORD", "postgres"),
        )

        return cls(
            policy=policy,
            kafka=kafka,
            postgres=postgres,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "standard"),
        )
