"""Command-line front end."""

import argparse
import json
import logging
import sys
from typing import Optional

from .config import ConfigurationManager, configure_logging
from .notify import LoggingNotifier
from .scanner import DocumentProcessor

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="attachment-sync",
        description="Sync markdown attachments with remote object storage",
    )
    parser.add_argument(
        "--config",
        help="Path to the JSON settings file (default: $ATTACHMENT_SYNC_CONFIG or attachment_sync.json)"
    )
    parser.add_argument(
        "--vault",
        default=".",
        help="Root folder of the documents and attachments"
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    upload = subparsers.add_parser("upload", help="Upload the local attachments of a document")
    upload.add_argument("document", help="Markdown file")

    download = subparsers.add_parser("download", help="Download the remote attachments of a document")
    download.add_argument("document", help="Markdown file")

    delete = subparsers.add_parser("delete", help="Delete remote files and remove their links")
    delete.add_argument("document", help="Markdown file")
    delete.add_argument(
        "--url",
        action="append",
        required=True,
        dest="urls",
        help="Remote URL to delete (repeatable)"
    )

    scan = subparsers.add_parser("scan", help="Scan a folder of markdown files")
    scan.add_argument("folder", help="Folder to scan")
    scan.add_argument(
        "--mode",
        choices=["upload", "download"],
        help="Also upload or download everything found"
    )

    subparsers.add_parser("test-connection", help="Write and delete a probe object")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for the command line."""
    parser = build_parser()
    args = parser.parse_args(argv)

    config_manager = ConfigurationManager.from_env(args.config)
    configure_logging(args.verbose or config_manager.settings.debug_logging)

    notifier = LoggingNotifier(echo=print)
    processor = DocumentProcessor.from_config(config_manager, args.vault, notifier)

    try:
        if args.command == "test-connection":
            result = processor.uploader_manager.test_connection()
            if result.success:
                print("Connection test succeeded")
                return 0
            print(f"Connection test failed: {result.error}", file=sys.stderr)
            return 1

        if args.command == "scan":
            result = processor.scan(args.folder)
            print(json.dumps(result.model_dump(), indent=2, ensure_ascii=False))
            if args.mode:
                summaries = processor.process_folder(args.folder, args.mode)
                print(json.dumps(summaries, indent=2, ensure_ascii=False))
                return 1 if any(s.get("failed") or s.get("error") for s in summaries) else 0
            return 0

        summary = processor.process_document(args.document, args.command, getattr(args, "urls", None))
        print(json.dumps(summary, indent=2, ensure_ascii=False))
        return 1 if summary["failed"] else 0
    except (FileNotFoundError, ValueError) as e:
        logger.error(str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 2
    finally:
        processor.uploader_manager.dispose()


if __name__ == "__main__":
    sys.exit(main())
