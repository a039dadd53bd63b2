"""Configuration management for p2p-lending."""

from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any

from p2p_lending.exceptions import ConfigurationError


@dataclass
class KafkaConfig:
    """Kafka producer configuration."""

    bootstrap_servers: str = "localhost:9092"
    acks: str = "all"
    batch_size: int = 16384
    linger_ms: int = 5
    compression: str = "snappy"
    retries: int = 3

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
    database: str = "lending"
    user: str = "postgres"
    password: str = "postgres"

    @property
    def connection_string(self) -> str:
        """Get connection string."""
        return f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/{self.database}"


@dataclass
class OutputConfig:
    """Output configuration."""

    json_output_dir: Path = field(default_factory=lambda: Path("output"))
    pretty_json: bool = False


@dataclass
class EventConfig:
    """Domain event publishing configuration."""

    topic_prefix: str = "dev.lending"
    source: str = "p2p-lending-core"
    history_size: int = 1000  # Most recent events kept in memory; 0 disables

    def topic_for(self, event_type: str) -> str:
        """Build the topic name for an event type."""
        return f"{self.topic_prefix}.{event_type}"


@dataclass
class PolicyConfig:
    """Business policy limits applied by the core components."""

    min_loan_amount: Decimal = Decimal("1000")
    max_loan_amount: Decimal = Decimal("10000000")
    min_duration_months: int = 1
    max_duration_months: int = 60
    max_purpose_length: int = 500
    min_investment: Decimal = Decimal("1000")
    late_fee_rate: Decimal = Decimal("0.05")
    payment_tolerance: Decimal = Decimal("1")
    min_match_score: int = 25
    match_candidate_window: int = 100
    default_lender_capacity: Decimal = Decimal("100000")
    reminder_window_days: int = 3

    def validate(self) -> None:
        """Check internal consistency of the policy values.

        Raises
        ------
        ConfigurationError
            If any bound is inverted or a rate is out of range.
        """
        if self.min_loan_amount <= 0 or self.min_loan_amount > self.max_loan_amount:
            raise ConfigurationError(
                f"Invalid loan amount bounds: {self.min_loan_amount}..{self.max_loan_amount}"
            )
        if self.min_duration_months < 1 or self.min_duration_months > self.max_duration_months:
            raise ConfigurationError(
                f"Invalid duration bounds: {self.min_duration_months}..{self.max_duration_months}"
            )
        if not Decimal("0") <= self.late_fee_rate <= Decimal("1"):
            raise ConfigurationError(f"Late fee rate must be within [0, 1]: {self.late_fee_rate}")
        if self.payment_tolerance < 0:
            raise ConfigurationError(f"Payment tolerance must be >= 0: {self.payment_tolerance}")
        if self.min_investment <= 0:
            raise ConfigurationError(f"Minimum investment must be > 0: {self.min_investment}")


@dataclass
class MarketplaceConfig:
    """Main configuration for the lending marketplace."""

    kafka: KafkaConfig = field(default_factory=KafkaConfig)
    postgres: PostgresConfig = field(default_factory=PostgresConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    events: EventConfig = field(default_factory=EventConfig)
    policy: PolicyConfig = field(default_factory=PolicyConfig)
    workers: int = 8
    seed: int | None = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "MarketplaceConfig":
        """Create config from environment variables."""
        import os

        kafka = KafkaConfig(
            bootstrap_servers=os.getenv("KAFKA_BOOTSTRAP_SERVERS", "localhost:9092"),
            acks=os.getenv("KAFKA_ACKS", "all"),
        )

        postgres = PostgresConfig(
            host=os.getenv("POSTGRES_HOST", "localhost"),
            port=int(os.getenv("POSTGRES_PORT", "5432")),
            database=os.getenv("POSTGRES_DB", "lending"),
            user=os.getenv("POSTGRES_USER", "postgres"),
            password=os.getenv("POSTGRES_PASSWORD", "postgres"),
        )

        output = OutputConfig(
            json_output_dir=Path(os.getenv("OUTPUT_DIR", "output")),
            pretty_json=os.getenv("PRETTY_JSON", "false").lower() == "true",
        )

        events = EventConfig(
            topic_prefix=os.getenv("TOPIC_PREFIX", "dev.lending"),
            source=os.getenv("EVENT_SOURCE", "p2p-lending-core"),
            history_size=int(os.getenv("EVENT_HISTORY_SIZE", "1000")),
        )

        policy = PolicyConfig(
            min_investment=Decimal(os.getenv("MIN_INVESTMENT", "1000")),
            late_fee_rate=Decimal(os.getenv("LATE_FEE_RATE", "0.05")),
        )
        policy.validate()

        return cls(
            kafka=kafka,
            postgres=postgres,
            output=output,
            events=events,
            policy=policy,
            workers=int(os.getenv("WORKERS", "8")),
            seed=int(os.getenv("SEED")) if os.getenv("SEED") else None,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )
