"""PostgreSQL sink persisting marketplace entities and events."""

import json
import logging
import threading
from dataclasses import is_dataclass
from enum import Enum
from typing import Any

from p2p_lending.exceptions import SinkError
from p2p_lending.sinks.serialization import serialize_value

logger = logging.getLogger(__name__)

DDL = """
CREATE TABLE IF NOT EXISTS borrowers (
    borrower_id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    credit_score INTEGER NOT NULL,
    monthly_income NUMERIC(15, 2) NOT NULL,
    employment_status TEXT NOT NULL,
    country CHAR(2) NOT NULL,
    created_at TIMESTAMP
);

CREATE TABLE IF NOT EXISTS lenders (
    investor_id TEXT PRIMARY KEY,
    risk_tolerance TEXT NOT NULL,
    min_amount NUMERIC(15, 2) NOT NULL,
    max_amount NUMERIC(15, 2) NOT NULL,
    preferred_durations INTEGER[] NOT NULL DEFAULT '{}',
    preferred_countries TEXT[] NOT NULL DEFAULT '{}',
    country CHAR(2)
);

CREATE TABLE IF NOT EXISTS loans (
    loan_id TEXT PRIMARY KEY,
    borrower_id TEXT NOT NULL REFERENCES borrowers(borrower_id),
    principal NUMERIC(15, 2) NOT NULL,
    duration_months INTEGER NOT NULL,
    purpose TEXT NOT NULL,
    interest_rate NUMERIC(5, 2) NOT NULL,
    risk_score INTEGER NOT NULL,
    risk_level TEXT NOT NULL,
    status TEXT NOT NULL,
    created_at TIMESTAMP NOT NULL,
    sequence BIGINT NOT NULL,
    approved_at TIMESTAMP,
    approved_by TEXT,
    decision_reason TEXT,
    activated_at TIMESTAMP,
    closed_at TIMESTAMP,
    updated_at TIMESTAMP
);

CREATE TABLE IF NOT EXISTS investments (
    investment_id TEXT PRIMARY KEY,
    investor_id TEXT NOT NULL,
    loan_id TEXT NOT NULL REFERENCES loans(loan_id),
    amount NUMERIC(15, 2) NOT NULL,
    created_at TIMESTAMP NOT NULL,
    status TEXT NOT NULL,
    updated_at TIMESTAMP,
    UNIQUE (loan_id, investor_id)
);

CREATE TABLE IF NOT EXISTS installments (
    installment_id TEXT PRIMARY KEY,
    loan_id TEXT NOT NULL REFERENCES loans(loan_id),
    borrower_id TEXT NOT NULL,
    installment_number INTEGER NOT NULL,
    due_date DATE NOT NULL,
    amount_due NUMERIC(15, 2) NOT NULL,
    principal_amount NUMERIC(15, 2) NOT NULL,
    interest_amount NUMERIC(15, 2) NOT NULL,
    status TEXT NOT NULL,
    paid_date DATE,
    paid_amount NUMERIC(15, 2),
    late_fee NUMERIC(15, 2) NOT NULL DEFAULT 0,
    payment_reference TEXT,
    created_at TIMESTAMP,
    updated_at TIMESTAMP
);

CREATE TABLE IF NOT EXISTS transitions (
    loan_id TEXT NOT NULL REFERENCES loans(loan_id),
    from_status TEXT,
    to_status TEXT NOT NULL,
    occurred_at TIMESTAMP NOT NULL,
    actor TEXT,
    reason TEXT,
    PRIMARY KEY (loan_id, to_status)
);

CREATE TABLE IF NOT EXISTS events (
    event_id TEXT PRIMARY KEY,
    event_type TEXT NOT NULL,
    event_time TIMESTAMP NOT NULL,
    source TEXT NOT NULL,
    subject TEXT NOT NULL,
    data JSONB NOT NULL,
    metadata JSONB NOT NULL DEFAULT '{}'
);

CREATE INDEX IF NOT EXISTS idx_loans_status ON loans(status);
CREATE INDEX IF NOT EXISTS idx_investments_investor ON investments(investor_id);
CREATE INDEX IF NOT EXISTS idx_installments_loan ON installments(loan_id);
CREATE INDEX IF NOT EXISTS idx_events_subject ON events(subject);
"""


class PostgresSink:
    """Upsert entity batches and domain events into PostgreSQL.

    Parameters
    ----------
    connection_string : str
        libpq connection string.
    event_batch_size : int
        Events buffered by ``send`` before they are written.
    """

    TABLE_COLUMNS = {
        "borrowers": [
            "borrower_id", "name", "credit_score", "monthly_income",
            "employment_status", "country", "created_at",
        ],
        "lenders": [
            "investor_id", "risk_tolerance", "min_amount", "max_amount",
            "preferred_durations", "preferred_countries", "country",
        ],
        "loans": [
            "loan_id", "borrower_id", "principal", "duration_months", "purpose",
            "interest_rate", "risk_score", "risk_level", "status", "created_at",
            "sequence", "approved_at", "approved_by", "decision_reason",
            "activated_at", "closed_at", "updated_at",
        ],
        "investments": [
            "investment_id", "investor_id", "loan_id", "amount",
            "created_at", "status", "updated_at",
        ],
        "installments": [
            "installment_id", "loan_id", "borrower_id", "installment_number",
            "due_date", "amount_due", "principal_amount", "interest_amount",
            "status", "paid_date", "paid_amount", "late_fee", "payment_reference",
            "created_at", "updated_at",
        ],
        "transitions": [
            "loan_id", "from_status", "to_status", "occurred_at", "actor", "reason",
        ],
        "events": [
            "event_id", "event_type", "event_time", "source", "subject", "data", "metadata",
        ],
    }

    PRIMARY_KEYS = {
        "borrowers": ["borrower_id"],
        "lenders": ["investor_id"],
        "loans": ["loan_id"],
        "investments": ["investment_id"],
        "installments": ["installment_id"],
        "transitions": ["loan_id", "to_status"],
        "events": ["event_id"],
    }

    JSON_COLUMNS = {"data", "metadata"}

    def __init__(self, connection_string: str, event_batch_size: int = 500) -> None:
        try:
            import psycopg
        except ImportError as e:
            raise ImportError(
                "psycopg is required for PostgresSink. Install with: pip install 'psycopg[binary]'"
            ) from e

        self.connection_string = connection_string
        self.conn = psycopg.connect(connection_string)
        self.event_batch_size = event_batch_size
        self._counts: dict[str, int] = {}
        self._pending_events: list[Any] = []
        self._lock = threading.Lock()

    def create_tables(self) -> None:
        """Create all marketplace tables if they do not exist."""
        with self.conn.cursor() as cur:
            cur.execute(DDL)
        self.conn.commit()
        logger.info("PostgreSQL tables ready")

    def send(self, topic: str, record: Any, key: str | None = None) -> None:
        """Buffer a domain event; the buffer is written once it is full."""
        with self._lock:
            self._pending_events.append(record)
            full = len(self._pending_events) >= self.event_batch_size
        if full:
            self.flush()

    def write_batch(self, entity_type: str, records: list[Any]) -> None:
        """Upsert a batch of records into the table of ``entity_type``."""
        if not records:
            return

        columns = self.TABLE_COLUMNS.get(entity_type)
        if columns is None:
            logger.warning("Unknown entity type for PostgreSQL: %s", entity_type)
            return

        sql = self._upsert_sql(entity_type, columns)
        rows = [self._extract_row(record, columns) for record in records]

        try:
            with self.conn.cursor() as cur:
                cur.executemany(sql, rows)
            self.conn.commit()
        except Exception as e:
            self.conn.rollback()
            raise SinkError(f"Failed to write {len(rows)} {entity_type} to PostgreSQL: {e}") from e

        with self._lock:
            self._counts[entity_type] = self._counts.get(entity_type, 0) + len(rows)
        logger.debug("Wrote %d %s rows", len(rows), entity_type)

    def flush(self) -> None:
        """Write buffered events."""
        with self._lock:
            pending, self._pending_events = self._pending_events, []
        if pending:
            self.write_batch("events", pending)

    def close(self) -> None:
        """Flush buffered events and close the connection."""
        try:
            self.flush()
        finally:
            self.conn.close()
        logger.info("PostgreSQL sink closed: %s", self._counts)

    def _upsert_sql(self, entity_type: str, columns: list[str]) -> str:
        keys = self.PRIMARY_KEYS[entity_type]
        placeholders = ", ".join(
            "%s::jsonb" if col in self.JSON_COLUMNS else "%s" for col in columns
        )
        updates = [col for col in columns if col not in keys]
        if entity_type in ("transitions", "events") or not updates:
            conflict = "DO NOTHING"
        else:
            conflict = "DO UPDATE SET " + ", ".join(f"{col} = EXCLUDED.{col}" for col in updates)
        return (
            f"INSERT INTO {entity_type} ({', '.join(columns)}) VALUES ({placeholders}) "
            f"ON CONFLICT ({', '.join(keys)}) {conflict}"
        )

    def _extract_row(self, record: Any, columns: list[str]) -> tuple:
        """Extract column values in table order from a dataclass or dict."""
        if is_dataclass(record):
            values = [getattr(record, col, None) for col in columns]
        elif isinstance(record, dict):
            values = [record.get(col) for col in columns]
        else:
            raise SinkError(f"Cannot write {type(record).__name__} to PostgreSQL")

        row = []
        for col, value in zip(columns, values):
            if col in self.JSON_COLUMNS:
                value = json.dumps(serialize_value(value or {}), default=str)
            elif isinstance(value, Enum):
                value = value.value
            elif isinstance(value, list):
                value = [v.value if isinstance(v, Enum) else v for v in value]
            row.append(value)
        return tuple(row)
