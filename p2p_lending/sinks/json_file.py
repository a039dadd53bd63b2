"""JSON file sink for exporting records and events to files."""

import threading
from pathlib import Path
from typing import IO, Any

from p2p_lending.sinks.serialization import to_dict, to_json


class JsonFileSink:
    """Output batches to JSON files and events to JSON Lines files.

    Batches go to ``<entity>.json``; events go to one ``.jsonl`` file per
    topic, named after the topic with dots replaced by underscores.
    """

    def __init__(self, output_dir: str | Path, pretty: bool = False) -> None:
        """Initialize JSON file sink.

        Parameters
        ----------
        output_dir : str | Path
            Directory to write JSON files.
        pretty : bool
            Pretty-print batch files. Event lines are always compact.
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.pretty = pretty
        self._counts: dict[str, int] = {}
        self._streams: dict[str, IO[str]] = {}
        self._lock = threading.Lock()

    def path_for_topic(self, topic: str) -> Path:
        """File receiving the events of a topic."""
        return self.output_dir / (topic.replace(".", "_") + ".jsonl")

    def send(self, topic: str, record: Any, key: str | None = None) -> None:
        """Append one event to its topic file."""
        line = to_json(record)
        with self._lock:
            stream = self._streams.get(topic)
            if stream is None:
                stream = open(self.path_for_topic(topic), "a", encoding="utf-8")
                self._streams[topic] = stream
            stream.write(line + "\n")
            self._counts[topic] = self._counts.get(topic, 0) + 1

    def write_batch(self, entity_type: str, records: list[Any]) -> None:
        """Write a batch of records to a JSON file."""
        import json

        file_path = self.output_dir / f"{entity_type}.json"
        data = [to_dict(record) for record in records]

        with open(file_path, "w", encoding="utf-8") as f:
            if self.pretty:
                json.dump(data, f, indent=2, ensure_ascii=False, default=str)
            else:
                json.dump(data, f, ensure_ascii=False, default=str)

        with self._lock:
            self._counts[entity_type] = len(records)

    def flush(self) -> None:
        """Flush open event files."""
        with self._lock:
            for stream in self._streams.values():
                stream.flush()

    def close(self) -> None:
        """Close event files and print summary."""
        with self._lock:
            for stream in self._streams.values():
                stream.close()
            self._streams.clear()

        print(f"JSON files written to: {self.output_dir}")
        for entity_type, count in self._counts.items():
            print(f"  {entity_type}: {count} records")
