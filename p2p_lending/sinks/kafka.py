"""Kafka sink for publishing domain events and entity snapshots."""

import logging
import threading
from dataclasses import dataclass, is_dataclass
from typing import Any

from confluent_kafka import Producer

from p2p_lending.config import KafkaConfig
from p2p_lending.sinks.serialization import to_json

logger = logging.getLogger(__name__)


@dataclass
class ProducerConfig:
    """Kafka producer configuration."""

    bootstrap_servers: str
    acks: str = "all"  # "0", "1", "all"
    batch_size: int = 16384  # bytes
    linger_ms: int = 5  # ms to wait for batching
    compression: str = "snappy"  # none, gzip, snappy, lz4
    retries: int = 3

    @classmethod
    def from_kafka_config(cls, config: KafkaConfig) -> "ProducerConfig":
        """Build producer settings from the marketplace Kafka configuration."""
        return cls(
            bootstrap_servers=config.bootstrap_servers,
            acks=config.acks,
            batch_size=config.batch_size,
            linger_ms=config.linger_ms,
            compression=config.compression,
            retries=config.retries,
        )


@dataclass
class ProducerStats:
    """Track producer delivery statistics."""

    sent: int = 0
    delivered: int = 0
    failed: int = 0

    @property
    def success_rate(self) -> float:
        """Calculate success rate."""
        total = self.delivered + self.failed
        return self.delivered / total if total > 0 else 0.0


class KafkaSink:
    """Publish JSON records to Kafka topics.

    Events are keyed by loan id so that every event of one loan lands on the
    same partition and is consumed in order.
    """

    # Entity type to key field mapping for batch snapshots
    KEY_FIELDS = {
        "borrowers": "borrower_id",
        "lenders": "investor_id",
        "loans": "loan_id",
        "investments": "loan_id",
        "installments": "loan_id",
        "transitions": "loan_id",
    }

    def __init__(self, config: ProducerConfig | str, topic_prefix: str = "dev.lending") -> None:
        """Initialize Kafka sink.

        Parameters
        ----------
        config : ProducerConfig | str
            Producer configuration or bootstrap servers string.
        topic_prefix : str
            Prefix of the topics written by ``write_batch``.
        """
        if isinstance(config, str):
            config = ProducerConfig(bootstrap_servers=config)

        self.config = config
        self.topic_prefix = topic_prefix
        self.producer = self._create_producer()
        self.stats = ProducerStats()
        self._lock = threading.Lock()

    def _create_producer(self) -> Producer:
        """Create Kafka producer with configuration."""
        return Producer(
            {
                "bootstrap.servers": self.config.bootstrap_servers,
                "acks": self.config.acks,
                "retries": self.config.retries,
                "linger.ms": self.config.linger_ms,
                "batch.size": self.config.batch_size,
                "compression.type": self.config.compression,
            }
        )

    def _delivery_callback(self, err: Any, msg: Any) -> None:
        """Handle delivery reports."""
        with self._lock:
            if err:
                self.stats.failed += 1
            else:
                self.stats.delivered += 1
        if err:
            logger.error("Delivery failed: %s", err)
        else:
            logger.debug("Delivered to %s[%d]@%d", msg.topic(), msg.partition(), msg.offset())

    def _get_key(self, entity_type: str, record: Any) -> str | None:
        """Extract message key from record based on entity type."""
        key_field = self.KEY_FIELDS.get(entity_type)
        if not key_field:
            return None

        if is_dataclass(record):
            return getattr(record, key_field, None)
        elif isinstance(record, dict):
            return record.get(key_field)
        return None

    def send(self, topic: str, record: Any, key: str | None = None) -> None:
        """Send a single record to a Kafka topic."""
        value = to_json(record).encode("utf-8")

        self.producer.produce(
            topic=topic,
            key=key.encode("utf-8") if key else None,
            value=value,
            callback=self._delivery_callback,
        )
        with self._lock:
            self.stats.sent += 1
        self.producer.poll(0)

    def write_batch(self, entity_type: str, records: list[Any]) -> None:
        """Write a batch of entity snapshots to ``<prefix>.<entity_type>``."""
        topic = f"{self.topic_prefix}.{entity_type}"
        logger.info("Writing batch to %s: %d records", topic, len(records))

        for record in records:
            self.send(topic, record, key=self._get_key(entity_type, record))

        self.flush()
        logger.info(
            "Batch complete: sent=%d, delivered=%d, failed=%d",
            self.stats.sent,
            self.stats.delivered,
            self.stats.failed,
        )

    def flush(self, timeout: float = 30.0) -> None:
        """Flush pending messages."""
        self.producer.flush(timeout)

    def close(self) -> None:
        """Flush and close the producer."""
        self.flush()
        logger.info(
            "Kafka sink closed: sent=%d, delivered=%d, failed=%d",
            self.stats.sent,
            self.stats.delivered,
            self.stats.failed,
        )
