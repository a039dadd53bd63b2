#!/usr/bin/env python3
"""Simulate the lending marketplace and export the results.

Runs a full marketplace cycle on synthetic borrowers and lenders:
- Domain events are published while the simulation runs (--events)
- The final state (borrowers, lenders, loans, investments, installments,
  transitions) is exported to the chosen sink in foreign-key order
"""

import argparse
import logging
import time
from pathlib import Path

from p2p_lending.config import MarketplaceConfig
from p2p_lending.logging import setup_logging
from p2p_lending.marketplace import Marketplace
from p2p_lending.scenarios.lending import MarketplaceScenario
from p2p_lending.sinks import ConsoleSink, JsonFileSink, KafkaSink, PostgresSink
from p2p_lending.sinks.kafka import ProducerConfig

logger = logging.getLogger(__name__)


def build_sink(name: str, config: MarketplaceConfig, args: argparse.Namespace):
    """Create the sink selected on the command line."""
    if name == "console":
        return ConsoleSink(pretty=False, max_records=args.max_records)
    if name == "json":
        return JsonFileSink(config.output.json_output_dir, pretty=config.output.pretty_json)
    if name == "kafka":
        return KafkaSink(
            ProducerConfig.from_kafka_config(config.kafka),
            topic_prefix=config.events.topic_prefix,
        )
    if name == "postgres":
        sink = PostgresSink(config.postgres.connection_string)
        sink.create_tables()
        return sink
    raise ValueError(f"Unknown sink: {name}")


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Simulate the p2p lending marketplace")
    parser.add_argument(
        "--borrowers",
        type=int,
        default=50,
        help="Number of borrowers, one loan each (default: 50)",
    )
    parser.add_argument(
        "--lenders",
        type=int,
        default=30,
        help="Number of lenders (default: 30)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed for reproducibility (default: SEED env or none)",
    )
    parser.add_argument(
        "--sink",
        choices=["console", "json", "kafka", "postgres"],
        default="json",
        help="Where to export the final state (default: json)",
    )
    parser.add_argument(
        "--events",
        action="store_true",
        help="Also publish domain events to the sink while simulating",
    )
    parser.add_argument(
        "--output-dir",
        type=str,
        default=None,
        help="Output directory for the json sink (default: OUTPUT_DIR env or ./output)",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Worker threads (default: WORKERS env or 8)",
    )
    parser.add_argument(
        "--max-records",
        type=int,
        default=5,
        help="Records printed per entity by the console sink (default: 5)",
    )
    parser.add_argument(
        "--log-format",
        choices=["standard", "json"],
        default="standard",
        help="Log format (default: standard)",
    )

    args = parser.parse_args()

    config = MarketplaceConfig.from_env()
    if args.seed is not None:
        config.seed = args.seed
    if args.workers is not None:
        config.workers = args.workers
    if args.output_dir is not None:
        config.output.json_output_dir = Path(args.output_dir)

    setup_logging(config.log_level, args.log_format)

    logger.info("=" * 60)
    logger.info("P2P Lending - Marketplace Simulation")
    logger.info("=" * 60)
    logger.info("Borrowers: %d", args.borrowers)
    logger.info("Lenders: %d", args.lenders)
    logger.info("Seed: %s", config.seed)
    logger.info("Sink: %s (events=%s)", args.sink, args.events)
    logger.info("=" * 60)

    sink = build_sink(args.sink, config, args)
    start = time.perf_counter()

    with Marketplace(config, sinks=[sink] if args.events else None) as marketplace:
        scenario = MarketplaceScenario(
            num_borrowers=args.borrowers,
            num_lenders=args.lenders,
            seed=config.seed,
            marketplace=marketplace,
        )
        scenario.generate()
        scenario.export([sink])
        summary = scenario.get_summary()

    if not args.events:
        sink.close()

    elapsed = time.perf_counter() - start
    logger.info("=" * 60)
    logger.info("Simulation finished in %.2fs", elapsed)
    for key, value in summary.items():
        logger.info("  %s: %s", key, value)
    logger.info("=" * 60)


if __name__ == "__main__":
    main()
