import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

import config
from client import PosSyncClient
from utils.logging_config import setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pos-sync", description="Offline sync engine maintenance commands")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("status", help="Show connectivity, queue and cache status")

    export_parser = commands.add_parser("export", help="Export the cart session as JSON")
    export_parser.add_argument("--output", "-o", type=Path, help="File to write (default: stdout)")

    import_parser = commands.add_parser("import", help="Replace the cart session from an exported file")
    import_parser.add_argument("file", type=Path)

    commands.add_parser("drain", help="Replay queued offline actions now")
    commands.add_parser("prefetch", help="Warm the response cache for critical endpoints")
    commands.add_parser("clear-cache", help="Delete every cached response")
    return parser


async def run_command(client: PosSyncClient, args: argparse.Namespace) -> int:
    if args.command == "status":
        await client.check_connection()
        status = await client.sync_status()
        print(json.dumps(status.model_dump(mode="json"), indent=2))
        return 0

    if args.command == "export":
        document = await client.cart.export_snapshot()
        if args.output:
            args.output.write_text(document, encoding="utf-8")
            logging.info(f"Cart exported to {args.output}")
        else:
            print(document)
        return 0

    if args.command == "import":
        try:
            raw = args.file.read_text(encoding="utf-8")
        except OSError as e:
            print(f"Cannot read {args.file}: {e}", file=sys.stderr)
            return 1
        if not await client.cart.import_snapshot(raw):
            print("Import rejected: not a valid cart export", file=sys.stderr)
            return 1
        print("Cart imported")
        return 0

    if args.command == "drain":
        client.connectivity.update(await client.api_client.is_reachable())
        result = await client.drain_queue()
        print(json.dumps(result.model_dump(mode="json"), indent=2))
        return 0 if not result.skipped else 2

    if args.command == "prefetch":
        stored = await client.cache_layer.prefetch()
        print(f"Prefetched {stored} endpoints")
        return 0

    if args.command == "clear-cache":
        cleared = await client.cache_layer.clear_all()
        print("Cache cleared" if cleared else "Cache could not be cleared")
        return 0 if cleared else 1

    return 1


async def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.info(f"Running '{args.command}' against {config.API_BASE_URL} ({config.RUNTIME_ENVIRONMENT.value})")
    client = PosSyncClient(poll_health=False)
    await client.start()
    try:
        return await run_command(client, args)
    finally:
        await client.close()


def cli():
    # Initialize centralized logging configuration
    setup_logging()
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
