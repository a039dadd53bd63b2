"""Console sink for debugging and development."""

import threading
from typing import Any

from p2p_lending.sinks.serialization import to_json


class ConsoleSink:
    """Output records and events to stdout."""

    def __init__(self, pretty: bool = True, max_records: int | None = None) -> None:
        """Initialize console sink.

        Parameters
        ----------
        pretty : bool
            Pretty-print JSON output.
        max_records : int | None
            Maximum records to print per batch (None for all).
        """
        self.pretty = pretty
        self.max_records = max_records
        self._counts: dict[str, int] = {}
        self._lock = threading.Lock()

    def send(self, topic: str, record: Any, key: str | None = None) -> None:
        """Print a single event."""
        line = to_json(record, pretty=self.pretty)
        with self._lock:
            print(f"[{topic}] key={key} {line}")
            self._counts[topic] = self._counts.get(topic, 0) + 1

    def write_batch(self, entity_type: str, records: list[Any]) -> None:
        """Write a batch of records to console."""
        with self._lock:
            print(f"\n{'='*60}")
            print(f"Entity: {entity_type} ({len(records)} records)")
            print("=" * 60)

            display_records = records[: self.max_records] if self.max_records else records
            for record in display_records:
                print(to_json(record, pretty=self.pretty))

            if self.max_records and len(records) > self.max_records:
                print(f"... and {len(records) - self.max_records} more records")

            self._counts[entity_type] = self._counts.get(entity_type, 0) + len(records)

    def flush(self) -> None:
        """Nothing is buffered."""

    def close(self) -> None:
        """Print summary and close."""
        print(f"\n{'='*60}")
        print("Console Sink Summary")
        print("=" * 60)
        for entity_type, count in self._counts.items():
            print(f"  {entity_type}: {count} records")
