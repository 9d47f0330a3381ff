"""
Command-line interface for logchain.

Inspect a deployed store, append entries, query ranges and watch live.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import time

from .archive import EntryArchive
from .client import EventLogClient
from .codec import to_log_entry
from .config import create_default_config_file, load_config
from .errors import DecodingError, LogChainError
from .transport import LedgerTransport
from .types import LOG_ENTRY_EVENT, BlockId, Changed, Delivered, Errored, LogEntry


def _block(value: str) -> BlockId:
    """argparse type for block bounds: a number or a block tag."""
    return int(value) if value.isdigit() else value


def _format_entry(entry: LogEntry) -> str:
    return (
        f"[{entry.block_number}] {entry.entry_type:<8} {entry.message} "
        f"(sender={entry.sender}, at={entry.user_timestamp})"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="logchain - Tamper-evident event log on a ledger"
    )
    parser.add_argument("--config", "-c", help="Path to configuration file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # init command
    init_parser = subparsers.add_parser("init", help="Create default configuration file")
    init_parser.add_argument("--path", default=None, help="Where to write the config")

    # status command
    status_parser = subparsers.add_parser("status", help="Show store owner, pause state and head")
    status_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # append command
    append_parser = subparsers.add_parser("append", help="Append a log entry")
    append_parser.add_argument("--type", "-t", required=True, dest="entry_type", help="Entry type tag")
    append_parser.add_argument("--message", "-m", required=True, help="Entry message")
    append_parser.add_argument("--timestamp", type=int, help="User timestamp (defaults to now)")
    append_parser.add_argument("--sender", "-s", required=True, help="Sending account")

    # owner commands
    for name, help_text in (("pause", "Pause the store"), ("unpause", "Unpause the store")):
        owner_parser = subparsers.add_parser(name, help=help_text)
        owner_parser.add_argument("--sender", "-s", required=True, help="Owner account")

    transfer_parser = subparsers.add_parser("transfer-ownership", help="Hand the store to a new owner")
    transfer_parser.add_argument("new_owner", help="Address of the new owner")
    transfer_parser.add_argument("--sender", "-s", required=True, help="Current owner account")

    # query command
    query_parser = subparsers.add_parser("query", help="List entries over a block range")
    query_parser.add_argument("--from-block", type=_block, help="Lower bound (number or tag)")
    query_parser.add_argument("--to-block", type=_block, default="latest", help="Upper bound")
    query_parser.add_argument("--type", "-t", dest="entry_type", help="Filter by entry type")
    query_parser.add_argument("--sender", help="Filter by sender")
    query_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # watch command
    watch_parser = subparsers.add_parser("watch", help="Follow new entries live")
    watch_parser.add_argument("--from-block", type=_block, default="latest", help="Start block")
    watch_parser.add_argument("--type", "-t", dest="entry_type", help="Filter by entry type")
    watch_parser.add_argument("--archive", action="store_true", help="Append entries to the archive")
    watch_parser.add_argument("--limit", type=int, help="Stop after this many entries")

    return parser


def main(argv: list[str] | None = None, transport: LedgerTransport | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "init":
        if args.path:
            create_default_config_file(args.path)
        else:
            create_default_config_file()
        return 0

    # Load client
    try:
        client = EventLogClient(load_config(args.config), transport=transport)
    except (ValueError, LogChainError) as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        return 1

    try:
        return asyncio.run(_run(args, client))
    except LogChainError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 0


async def _run(args: argparse.Namespace, client: EventLogClient) -> int:
    async with client:
        if args.command == "status":
            snapshot = await client.status()
            if args.json:
                print(json.dumps(snapshot.to_dict(), indent=2))
            else:
                print(f"Store:  {snapshot.address}")
                print(f"Owner:  {snapshot.owner}")
                print(f"Status: {snapshot.status}")
                print(f"Head:   {snapshot.latest_block}")

        elif args.command == "append":
            timestamp = args.timestamp if args.timestamp is not None else int(time.time())
            receipt = await client.store.append(
                timestamp, args.entry_type, args.message, sender=args.sender
            )
            print(f"Appended in block {receipt.block_number} ({receipt.transaction_hash})")

        elif args.command == "pause":
            receipt = await client.store.pause(sender=args.sender)
            print(f"Paused in block {receipt.block_number}")

        elif args.command == "unpause":
            receipt = await client.store.unpause(sender=args.sender)
            print(f"Unpaused in block {receipt.block_number}")

        elif args.command == "transfer-ownership":
            receipt = await client.store.transfer_ownership(args.new_owner, sender=args.sender)
            print(f"Ownership transferred to {args.new_owner} in block {receipt.block_number}")

        elif args.command == "query":
            entries = await client.query(
                from_block=args.from_block,
                to_block=args.to_block,
                entry_type=args.entry_type,
                sender=args.sender,
            )
            if args.json:
                print(json.dumps([e.to_dict() for e in entries], indent=2))
            else:
                for entry in entries:
                    print(_format_entry(entry))
                print(f"{len(entries)} entries")

        elif args.command == "watch":
            return await _watch(args, client)

    return 0


async def _watch(args: argparse.Namespace, client: EventLogClient) -> int:
    archive = EntryArchive(client.config.archive_directory) if args.archive else None
    received = 0

    try:
        async with client.subscribe(
            LOG_ENTRY_EVENT, from_block=args.from_block, entry_type=args.entry_type
        ) as subscription:
            async for signal in subscription:
                if isinstance(signal, Delivered):
                    try:
                        entry = to_log_entry(signal.event, client.codec)
                    except DecodingError as e:
                        print(f"Skipped undecodable entry: {e}", file=sys.stderr)
                        continue
                    print(_format_entry(entry))
                    if archive:
                        archive.record_entry(entry)
                    received += 1
                    if args.limit is not None and received >= args.limit:
                        break

                elif isinstance(signal, Changed):
                    print(f"Retracted {signal.ref.transaction_hash} (log {signal.ref.log_index})")
                    if archive:
                        archive.record_changed(signal.ref)

                elif isinstance(signal, Errored):
                    print(f"Error: subscription failed: {signal.cause}", file=sys.stderr)
                    return 1
    finally:
        if archive:
            archive.close()

    return 0


if __name__ == "__main__":
    sys.exit(main())
