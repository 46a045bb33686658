"""
    Command line entrypoint for the receipt pipeline
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from receipt_pipeline.app import create_pipeline
from receipt_pipeline.config import load_config, setup_logging
from receipt_pipeline.exceptions import ReceiptPipelineError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="receipt-pipeline",
        description="Turn receipt photos into structured expense records",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Scan receipts (printed as JSON, one record per image)
  receipt-pipeline scan photo1.jpg photo2.jpg

  # List every persisted scan, newest receipt date first
  receipt-pipeline offline

Extractors are enabled through RECEIPT_* environment variables
(e.g. RECEIPT_TEXTRACT_ENDPOINT, RECEIPT_GOOGLE_VISION_API_KEY).
        """
    )
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Show pipeline progress logs")

    commands = parser.add_subparsers(dest="command", required=True)

    scan = commands.add_parser("scan", help="Scan one or more receipt images")
    scan.add_argument("images", nargs="+", help="Image file paths")

    commands.add_parser("offline", help="Print persisted scan results")
    commands.add_parser("clear-cache", help="Clear cached and persisted scan results")
    commands.add_parser("stats", help="Print extractor and cache statistics")

    return parser


def _print_json(payload) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


async def run(args: argparse.Namespace) -> int:
    pipeline = create_pipeline(load_config())
    exit_code = 0

    async with pipeline:
        if args.command == "scan":
            for image in args.images:
                try:
                    record = await pipeline.scan(image)
                except ReceiptPipelineError as e:
                    print(f"[ERROR] {image}: {e}", file=sys.stderr)
                    exit_code = 1
                    continue
                _print_json(record.to_storage_dict())

        elif args.command == "offline":
            records = await pipeline.get_offline_results()
            _print_json([record.to_storage_dict() for record in records])

        elif args.command == "clear-cache":
            deleted = await pipeline.clear_cache()
            print(f"[INFO] Cleared {deleted} persisted results")

        elif args.command == "stats":
            _print_json(pipeline.get_stats())

    return exit_code


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entrypoint."""
    args = build_parser().parse_args(argv)
    setup_logging(logging.INFO if args.verbose else logging.WARNING)

    try:
        return asyncio.run(run(args))
    except ReceiptPipelineError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
