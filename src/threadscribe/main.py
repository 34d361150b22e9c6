"""Command-line entry point for threadscribe."""

import argparse
import asyncio
import sys

from threadscribe.config import get_settings
from threadscribe.processor import ThreadProcessor
from threadscribe.utils.errors import ConfigurationError
from threadscribe.utils.logging import get_logger, setup_logging
from threadscribe.utils.store import get_store

logger = get_logger(__name__)


async def run_single(channel: str, thread_ts: str, force: bool = False) -> int:
    """Process one thread in the foreground.

    Returns:
        Process exit code.
    """
    try:
        result = await ThreadProcessor().process(channel, thread_ts, force=force)
    finally:
        await get_store().disconnect()

    print(
        f"{result.outcome.value}: processed={result.processed_count} "
        f"skipped={result.skipped_count}"
    )
    return 0 if result.success else 1


def serve(host: str, port: int) -> None:
    """Run the HTTP endpoints under uvicorn."""
    import uvicorn

    uvicorn.run("threadscribe.app:app", host=host, port=port, log_config=None)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="threadscribe",
        description="Extract text from images in Slack threads.",
    )
    subcommands = parser.add_subparsers(dest="command", required=True)

    process = subcommands.add_parser("process", help="Process one thread now")
    process.add_argument("channel", help="Channel ID (Cxxxxxxxxxx)")
    process.add_argument("thread_ts", help="Thread root timestamp (1234567890.123456)")
    process.add_argument("--force", action="store_true", help="Reprocess already processed images")

    server = subcommands.add_parser("serve", help="Serve the Slack endpoints")
    server.add_argument("--host", default="0.0.0.0")
    server.add_argument("--port", type=int, default=8000)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    settings = get_settings()
    setup_logging(log_level=settings.log_level, json_format=settings.log_json)

    try:
        settings.require_credentials()
    except ConfigurationError as e:
        logger.error("configuration_missing", missing=e.details.get("missing"))
        print(f"Error: {e.message}", file=sys.stderr)
        return 2

    if args.command == "serve":
        serve(args.host, args.port)
        return 0

    try:
        return asyncio.run(run_single(args.channel, args.thread_ts, force=args.force))
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
