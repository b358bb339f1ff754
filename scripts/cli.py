"""Command-line entry point for the Newsletter Archiver."""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path

from newsletter_archiver.config.settings import ArchiverSettings
from newsletter_archiver.core.exceptions import ArchiveCancelled
from newsletter_archiver.core.models import ArchiveProgress
from newsletter_archiver.pipeline.archiver import NewsletterArchiver


def setup_logging(level: str) -> None:
    """Configure logging with timestamp and module info."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def on_progress(progress: ArchiveProgress) -> None:
    """Print progress updates to stdout."""
    print(
        f"[{progress.current_stage}] "
        f"found={progress.ids_found} "
        f"archived={progress.messages_archived} "
        f"skipped={progress.messages_skipped}",
        end="\r",
        flush=True,
    )


def _add_filter_args(subparser: argparse.ArgumentParser) -> None:
    """Add --from and --subject-regex overrides to a subparser."""
    subparser.add_argument(
        "--from",
        dest="search_from",
        default=None,
        help="Sender substring to search for (default: from settings)",
    )
    subparser.add_argument(
        "--subject-regex",
        dest="subject_regex",
        default=None,
        help="Regular expression removed from subjects in section titles",
    )


def install_interrupt_handler(cancel_event: threading.Event) -> object:
    """Make Ctrl-C request a cooperative stop; a second Ctrl-C aborts at once.

    Returns the previous SIGINT handler.
    """

    def request_cancel(signum: int, frame: object) -> None:
        if cancel_event.is_set():
            raise KeyboardInterrupt
        cancel_event.set()
        print("\n\nStopping before the next mailbox request (Ctrl-C again to abort)", flush=True)

    return signal.signal(signal.SIGINT, request_cancel)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Newsletter Archiver - Bundle unseen newsletter emails into an EPUB"
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    archive_parser = subparsers.add_parser("archive", help="Build the EPUB archive")
    _add_filter_args(archive_parser)
    archive_parser.add_argument("--output", "-o", type=Path, help="Output EPUB path")
    archive_parser.add_argument("--title", "-t", help="Book title (date range is appended)")
    archive_parser.add_argument(
        "--timezone", dest="display_timezone", help="IANA zone for dates in titles"
    )

    count_parser = subparsers.add_parser("count", help="Count matching unseen messages")
    _add_filter_args(count_parser)

    return parser


def settings_from_args(args: argparse.Namespace) -> ArchiverSettings:
    """Load settings, applying any command-line overrides."""
    overrides = {
        "search_from": getattr(args, "search_from", None),
        "subject_regex": getattr(args, "subject_regex", None),
        "output_path": getattr(args, "output", None),
        "book_title": getattr(args, "title", None),
        "display_timezone": getattr(args, "display_timezone", None),
    }
    return ArchiverSettings(**{k: v for k, v in overrides.items() if v is not None})


def main() -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        settings = settings_from_args(args)
    except ValueError as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)
    setup_logging(settings.log_level)

    cancel_event = threading.Event()
    previous_handler = install_interrupt_handler(cancel_event)
    archiver = NewsletterArchiver(
        settings=settings, on_progress=on_progress, cancel_event=cancel_event
    )

    try:
        if args.command == "archive":
            progress = archiver.run()
            print(
                f"\n\nArchived {progress.messages_archived} of {progress.ids_found} "
                f"messages to {progress.output_path}"
            )

        elif args.command == "count":
            count = archiver.count()
            print(f"\n{count} unseen messages match")

    except (ArchiveCancelled, KeyboardInterrupt):
        print("\n\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        logging.getLogger(__name__).error("Run failed: %s", e)
        print(f"\nError: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        archiver.close()
        if previous_handler is not None:
            signal.signal(signal.SIGINT, previous_handler)


if __name__ == "__main__":
    main()
