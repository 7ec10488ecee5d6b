"""Application entry point."""

import argparse
import asyncio
import logging
import signal
import sys

from pellernation.api.server import run_server
from pellernation.config import get_config


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Peller Nation fan-club backend",
    )
    parser.add_argument(
        "--migrate",
        action="store_true",
        help="Apply pending database migrations before serving.",
    )
    return parser


async def serve(apply_migrations: bool) -> None:
    """Run the HTTP server until SIGTERM/SIGINT."""
    logger = logging.getLogger(__name__)
    shutdown_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, shutdown_event.set)
        except NotImplementedError:
            # Windows event loops have no signal handler support
            signal.signal(sig, lambda *_: shutdown_event.set())

    try:
        await run_server(shutdown_event=shutdown_event, apply_migrations=apply_migrations)
    except Exception as e:
        logger.error(f"Server failed: {e}")
        raise SystemExit(1) from e


def main() -> None:
    """Main entry point with logging configuration."""
    args = build_parser().parse_args()

    config = get_config()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logging.getLogger(__name__).info(f"Configuration loaded: env={config.env}")

    try:
        asyncio.run(serve(args.migrate))
    except KeyboardInterrupt:
        logging.info("Interrupted by user")
        sys.exit(0)


if __name__ == "__main__":
    main()
