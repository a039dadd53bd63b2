"""Output sinks for marketplace events and entity exports."""

from p2p_lending.sinks.console import ConsoleSink
from p2p_lending.sinks.json_file import JsonFileSink
from p2p_lending.sinks.kafka import KafkaSink
from p2p_lending.sinks.postgres import PostgresSink

__all__ = ["ConsoleSink", "JsonFileSink", "KafkaSink", "PostgresSink"]
