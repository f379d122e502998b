"""Command-line entry point for listing and deleting list item attachments."""

from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
from dataclasses import asdict
from typing import Sequence

from .cancellation import CancellationToken
from .client import SharePointClient
from .config import Settings
from .errors import AttachmentAccessError
from .models import Operation


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="List or delete SharePoint list item attachments.")
    parser.add_argument("--base-url", help="Site URL (defaults to SP_BASE_URL)")
    parser.add_argument("--list-title", help="List title (defaults to SP_LIST_TITLE)")
    parser.add_argument("--list-id", help="List GUID (defaults to SP_LIST_ID)")
    parser.add_argument("--log-level", help="Override LOG_LEVEL")

    commands = parser.add_subparsers(dest="command", required=True)
    list_cmd = commands.add_parser("list", help="Print one JSON object per attachment")
    list_cmd.add_argument("--item-id", required=True, help="List item ID")

    delete_cmd = commands.add_parser("delete", help="Delete one attachment by file name")
    delete_cmd.add_argument("--item-id", required=True, help="List item ID")
    delete_cmd.add_argument("--file-name", required=True, help="Attachment file name")

    for sub in (list_cmd, delete_cmd):
        sub.add_argument(
            "--dry-run", action="store_true", help="Print candidate requests without calling the server"
        )
    return parser


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def main(argv: Sequence[str] | None = None, client: SharePointClient | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = client.settings if client else Settings()
    configure_logging(args.log_level or settings.log_level)
    client = client or SharePointClient(settings)

    operation = Operation.LIST_ATTACHMENTS if args.command == "list" else Operation.DELETE_ATTACHMENT
    context = client.context(
        args.item_id,
        file_name=getattr(args, "file_name", None),
        base_url=args.base_url,
        list_title=args.list_title,
        list_id=args.list_id,
    )

    if args.dry_run:
        try:
            candidates = client.resolver.resolve(operation, context)
        except AttachmentAccessError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1
        for candidate in candidates:
            for descriptor in candidate.attempts:
                print(f"[DRY-RUN] {candidate.label}: {descriptor.method} {descriptor.url}")
        return 0

    cancel = CancellationToken()
    previous = signal.signal(signal.SIGINT, lambda *_: cancel.cancel())
    try:
        outcome = client.outcome(operation, context, cancel)
    finally:
        signal.signal(signal.SIGINT, previous)

    if not outcome.success:
        print(f"Error: {outcome.error_message}", file=sys.stderr)
        return 1

    if operation is Operation.LIST_ATTACHMENTS:
        for record in outcome.value or []:
            print(json.dumps(asdict(record)))
    else:
        logging.info("Deleted '%s' from item %s", context.file_name, context.item_id)
    return 0


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
