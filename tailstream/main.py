"""tailstream: follow a growing file and copy appended data to stdout."""

import argparse
import asyncio
import logging
import signal
import sys

from tailstream.config import load_options, load_yaml_config
from tailstream.events import Data, Error
from tailstream.source import TailingSource
from tailstream.watch import default_watch_service

logger = logging.getLogger(__name__)


def build_cli_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tailstream",
        description="Emit data appended to a file until it goes quiet.",
    )
    parser.add_argument("path", help="File to tail")
    parser.add_argument(
        "--timeout", type=float, default=None,
        help="Seconds without changes before ending, 0 to never end (default: 5)",
    )
    parser.add_argument(
        "--start", type=int, default=None,
        help="Byte offset to start reading from (default: 0)",
    )
    parser.add_argument(
        "--start-paused", action="store_true",
        help="Open paused; send SIGUSR1 to resume",
    )
    parser.add_argument(
        "--encoding", default=None,
        help="Decode data as text with this encoding (default: raw bytes)",
    )
    parser.add_argument(
        "--chunk-size", type=int, default=None,
        help="Maximum bytes per read (default: 65536)",
    )
    parser.add_argument(
        "--config", default=None,
        help="Path to YAML file with tail options",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Debug logging",
    )
    return parser


def _write_chunk(payload):
    if isinstance(payload, bytes):
        sys.stdout.buffer.write(payload)
        sys.stdout.buffer.flush()
    else:
        sys.stdout.write(payload)
        sys.stdout.flush()


async def run(args) -> int:
    try:
        options = load_options(args, load_yaml_config(args.config))
    except (ValueError, LookupError) as exc:
        logger.error("Invalid options: %s", exc)
        return 2
    source = TailingSource.open(args.path, options)
    failed = False

    def on_event(event):
        nonlocal failed
        if isinstance(event, Data):
            _write_chunk(event.payload)
        elif isinstance(event, Error):
            failed = True

    source.add_listener(on_event)

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, source.destroy)
        loop.add_signal_handler(signal.SIGTERM, source.destroy)
        if hasattr(signal, "SIGUSR1"):
            loop.add_signal_handler(signal.SIGUSR1, source.resume)
    except NotImplementedError:
        logger.debug("Signal handlers unavailable on this platform")

    await source.wait_closed()
    default_watch_service().stop()

    logger.info("Stats: %s", source.stats.snapshot())
    return 1 if failed else 0


def main(argv: list[str] | None = None) -> int:
    args = build_cli_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [TAIL] %(levelname)s %(message)s",
        stream=sys.stderr,
    )
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
