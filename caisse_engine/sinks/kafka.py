"""Kafka sink publishing contract notifications."""

import logging
import time
from dataclasses import dataclass
from typing import Any

from confluent_kafka import KafkaException, Producer

from caisse_engine.config import KafkaConfig
from caisse_engine.exceptions import SinkError
from caisse_engine.models.events import ContractEvent
from caisse_engine.sinks.serialization import to_json

logger = logging.getLogger(__name__)


@dataclass
class ProducerStats:
    """Track producer delivery statistics."""

    sent: int = 0
    delivered: int = 0
    failed: int = 0
    start_time: float | None = None
    end_time: float | None = None

    @property
    def success_rate(self) -> float:
        """Calculate success rate."""
        total = self.delivered + self.failed
        return self.delivered / total if total > 0 else 0.0

    @property
    def pending(self) -> int:
        return self.sent - self.delivered - self.failed


class KafkaSink:
    """Publish notifications to a Kafka topic, keyed by contract id.

    Keying by contract keeps every event of one contract in a single
    partition, so consumers see them in order.
    """

    def __init__(self, config: KafkaConfig | str) -> None:
        """Initialize Kafka sink.

        Parameters
        ----------
        config : KafkaConfig | str
            Producer configuration or bootstrap servers string.
        """
        if isinstance(config, str):
            config = KafkaConfig(bootstrap_servers=config)

        self.config = config
        self.topic = config.topic
        self.producer = self._create_producer()
        self.stats = ProducerStats(start_time=time.time())

    def _create_producer(self) -> Producer:
        """Create Kafka producer with configuration."""
        return Producer(self.config.to_dict())

    def _delivery_callback(self, err: Any, msg: Any) -> None:
        """Handle delivery reports."""
        if err:
            self.stats.failed += 1
            logger.error("Delivery failed: %s", err)
        else:
            self.stats.delivered += 1
            logger.debug("Delivered to %s[%d]@%d", msg.topic(), msg.partition(), msg.offset())

    def send(self, event: ContractEvent, topic: str | None = None) -> None:
        """Send a single event envelope."""
        try:
            self.producer.produce(
                topic=topic or self.topic,
                key=event.subject.encode("utf-8"),
                value=to_json(event).encode("utf-8"),
                callback=self._delivery_callback,
            )
        except (BufferError, KafkaException) as e:
            raise SinkError(f"Could not enqueue {event.event_type} for {event.subject}: {e}") from e
        self.stats.sent += 1
        self.producer.poll(0)

    def notify(self, event_type: str, subject: str, payload: dict[str, Any]) -> None:
        self.send(ContractEvent.create(event_type, subject, payload))

    def flush(self, timeout: float = 30.0) -> None:
        """Flush pending messages."""
        remaining = self.producer.flush(timeout)
        if remaining:
            logger.warning("%d messages still queued after flush", remaining)

    def close(self) -> None:
        """Flush and close the producer."""
        self.flush()
        self.stats.end_time = time.time()
        logger.info(
            "Kafka sink closed: sent=%d, delivered=%d, failed=%d",
            self.stats.sent,
            self.stats.delivered,
            self.stats.failed,
        )
