"""Notification sinks for contract lifecycle events."""

from caisse_engine.sinks.base import NotificationSink
from caisse_engine.sinks.console import ConsoleSink
from caisse_engine.sinks.kafka import KafkaSink, ProducerStats

__all__ = ["ConsoleSink", "KafkaSink", "NotificationSink", "ProducerStats"]
