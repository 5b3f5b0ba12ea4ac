"""
Entry point for consuming a topic to the terminal.

Usage:
    # Consume every partition from the beginning
    python -m kafka_tail consume orders

    # Start at the most recent record of each partition and keep following
    python -m kafka_tail consume orders --follow

    # Payloads only, no headers/key/offset block
    python -m kafka_tail consume orders --offset newest --raw

    # Only some partitions
    python -m kafka_tail consume orders --partitions 0,3

Connection settings come from the environment (see KafkaConfig.from_env).
Set SCHEMA_REGISTRY_URL to decode Confluent-framed Avro payloads.

Output:
    stderr - decode errors, headers, key, partition, offset, timestamp
    stdout - payloads (indented JSON when the payload is JSON)

Output is never colorized; --raw additionally drops the diagnostics block
and prints payloads exactly as decoded.
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
from pathlib import Path
from typing import List, Optional, Tuple

from prometheus_client import start_http_server

from kafka_tail.broker import AIOKafkaBrokerClient
from kafka_tail.common.exceptions import PipelineError
from kafka_tail.common.logging import get_logger, setup_logging
from kafka_tail.config import KafkaConfig
from kafka_tail.consume import consume
from kafka_tail.decoding import build_decoder
from kafka_tail.offsets import OffsetResolver
from kafka_tail.schemas.records import ConsumeRequest, OffsetMode

# Placeholder logger until setup_logging() is called in main()
logger = logging.getLogger(__name__)


def parse_partitions(value: str) -> Tuple[int, ...]:
    """Parse a comma-separated partition list such as "0,2,5"."""
    try:
        partitions = tuple(int(p.strip()) for p in value.split(",") if p.strip())
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid partition list: {value!r}")
    if not partitions or any(p < 0 for p in partitions):
        raise argparse.ArgumentTypeError(f"invalid partition list: {value!r}")
    return partitions


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="kafka-tail",
        description="Consume Kafka topics to the terminal",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)",
    )

    parser.add_argument(
        "--log-dir",
        type=str,
        default=None,
        help="Write JSON logs under this directory (default: LOG_DIR env var, or no file logs)",
    )

    parser.add_argument(
        "--metrics-port",
        type=int,
        default=None,
        help="Serve Prometheus metrics on this port (default: disabled)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    consume_parser = subparsers.add_parser(
        "consume",
        help="Consume messages",
        description="Consume messages from every partition of a topic",
    )
    consume_parser.add_argument("topic", help="Topic to consume")
    consume_parser.add_argument(
        "--offset",
        choices=[OffsetMode.OLDEST.value, OffsetMode.NEWEST.value],
        default=OffsetMode.OLDEST.value,
        help="Offset to start consuming (default: oldest)",
    )
    consume_parser.add_argument(
        "-f",
        "--follow",
        action="store_true",
        help="Start consuming with offset HEAD-1 on each partition. Overrides --offset",
    )
    consume_parser.add_argument(
        "--raw",
        action="store_true",
        help="Print raw output of messages, without key or prettified JSON",
    )
    consume_parser.add_argument(
        "--partitions",
        type=parse_partitions,
        default=None,
        help="Comma-separated partitions to consume (default: all)",
    )

    return parser.parse_args(argv)


def resolve_offset_mode(args: argparse.Namespace) -> OffsetMode:
    if args.follow:
        return OffsetMode.FOLLOW
    return OffsetMode(args.offset)


async def run_consume(args: argparse.Namespace, config: KafkaConfig) -> None:
    """Connect, build the request and consume until cancelled."""
    broker = AIOKafkaBrokerClient(config)
    await broker.start()

    try:
        partitions = args.partitions or tuple(await broker.partitions(args.topic))
        request = ConsumeRequest(
            topic=args.topic,
            partitions=partitions,
            offset_mode=resolve_offset_mode(args),
            raw=args.raw,
        )
        resolver = OffsetResolver(
            broker,
            probe_timeout=config.probe_timeout_seconds,
            retry_backoff=config.probe_backoff_seconds,
            max_attempts=config.offset_probe_max_attempts,
        )
        decoder = build_decoder(config, request.topic)
        await consume(request, broker, decoder, resolver=resolver)
    finally:
        await broker.stop()


def setup_signal_handlers(loop: asyncio.AbstractEventLoop, main_task: asyncio.Task):
    """Cancel the consume task on SIGINT/SIGTERM.

    Note: Signal handlers are not supported on Windows. On Windows,
    KeyboardInterrupt is used instead.
    """

    def handle_signal(sig):
        logger.debug(f"Received signal {sig.name}, stopping consumer...")
        main_task.cancel()

    if sys.platform == "win32":
        return

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, lambda s=sig: handle_signal(s))


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point. Returns the process exit code."""
    global logger
    args = parse_args(argv)

    log_dir_str = args.log_dir or os.getenv("LOG_DIR")
    json_logs = os.getenv("JSON_LOGS", "true").lower() in ("true", "1", "yes")
    setup_logging(
        name="kafka_tail",
        log_dir=Path(log_dir_str) if log_dir_str else None,
        json_format=json_logs,
        console_level=getattr(logging, args.log_level),
    )
    logger = get_logger(__name__)

    try:
        config = KafkaConfig.from_env()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    if args.metrics_port is not None:
        logger.debug(f"Starting metrics server on port {args.metrics_port}")
        start_http_server(args.metrics_port)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    main_task = loop.create_task(run_consume(args, config))
    setup_signal_handlers(loop, main_task)

    exit_code = 0
    try:
        loop.run_until_complete(main_task)
    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.debug("Consumer stopped")
    except BrokenPipeError:
        # Output closed by the reader (e.g. piped to head); nothing more to print
        sys.stderr = open(os.devnull, "w")
        sys.stdout = open(os.devnull, "w")
    except PipelineError as e:
        logger.error(f"Fatal error: {e}")
        exit_code = 1
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        exit_code = 1
    finally:
        if not main_task.done():
            main_task.cancel()
            loop.run_until_complete(asyncio.gather(main_task, return_exceptions=True))
        loop.close()

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
