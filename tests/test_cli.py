"""Tests for CLI argument parsing and settings overrides."""

from __future__ import annotations

import signal
import sys
import threading
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

import scripts.cli as cli_module
from newsletter_archiver.core.exceptions import ArchiveCancelled, MailConnectionError
from newsletter_archiver.core.models import ArchiveProgress


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep a developer's .env and ARCHIVER_* variables out of the tests."""
    monkeypatch.chdir(tmp_path)
    for name in ("ARCHIVER_SEARCH_FROM", "ARCHIVER_BOOK_TITLE", "ARCHIVER_OUTPUT_PATH"):
        monkeypatch.delenv(name, raising=False)


class TestArchiveArgs:
    """Test flags on the 'archive' subcommand."""

    def test_defaults(self) -> None:
        args = cli_module.build_parser().parse_args(["archive"])
        assert args.command == "archive"
        assert args.search_from is None
        assert args.subject_regex is None
        assert args.output is None
        assert args.title is None
        assert args.display_timezone is None

    def test_all_flags(self) -> None:
        args = cli_module.build_parser().parse_args(
            [
                "archive",
                "--from", "digest@news.example",
                "--subject-regex", r"\[Digest\]",
                "-o", "out/book.epub",
                "-t", "Weekly Digest",
                "--timezone", "Europe/Berlin",
            ]
        )
        assert args.search_from == "digest@news.example"
        assert args.subject_regex == r"\[Digest\]"
        assert args.output == Path("out/book.epub")
        assert args.title == "Weekly Digest"
        assert args.display_timezone == "Europe/Berlin"


class TestCountArgs:
    """Test flags on the 'count' subcommand."""

    def test_from_flag(self) -> None:
        args = cli_module.build_parser().parse_args(["count", "--from", "a@b.example"])
        assert args.command == "count"
        assert args.search_from == "a@b.example"

    def test_has_no_output_flag(self) -> None:
        with pytest.raises(SystemExit):
            cli_module.build_parser().parse_args(["count", "--output", "x.epub"])


class TestSettingsFromArgs:
    """Command-line values override the environment; absent flags do not."""

    def test_overrides_applied(self) -> None:
        args = cli_module.build_parser().parse_args(
            ["archive", "--from", "digest@news.example", "-o", "book.epub", "-t", "Digest"]
        )
        settings = cli_module.settings_from_args(args)

        assert settings.search_from == "digest@news.example"
        assert settings.output_path == Path("book.epub")
        assert settings.book_title == "Digest"

    def test_missing_flags_keep_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ARCHIVER_SEARCH_FROM", "env@news.example")
        monkeypatch.setenv("ARCHIVER_BOOK_TITLE", "From Env")
        args = cli_module.build_parser().parse_args(["count"])

        settings = cli_module.settings_from_args(args)

        assert settings.search_from == "env@news.example"
        assert settings.book_title == "From Env"


class TestMain:
    """Exit codes of the entry point."""

    def test_no_command_exits_1(self) -> None:
        with patch.object(sys, "argv", ["cli.py"]), pytest.raises(SystemExit) as exc:
            cli_module.main()
        assert exc.value.code == 1

    def test_invalid_timezone_exits_1(self) -> None:
        argv = ["cli.py", "archive", "--from", "x", "--timezone", "Not/AZone"]
        with patch.object(sys, "argv", argv), pytest.raises(SystemExit) as exc:
            cli_module.main()
        assert exc.value.code == 1

    def test_archive_success(self, capsys: pytest.CaptureFixture[str]) -> None:
        archiver = MagicMock()
        archiver.run.return_value = ArchiveProgress(
            ids_found=3, messages_archived=2, messages_skipped=1, output_path="book.epub"
        )
        argv = ["cli.py", "archive", "--from", "digest@news.example"]
        with (
            patch.object(sys, "argv", argv),
            patch.object(cli_module, "NewsletterArchiver", return_value=archiver),
        ):
            cli_module.main()

        assert "Archived 2 of 3 messages to book.epub" in capsys.readouterr().out
        archiver.close.assert_called_once()

    def test_count_prints_matches(self, capsys: pytest.CaptureFixture[str]) -> None:
        archiver = MagicMock()
        archiver.count.return_value = 7
        with (
            patch.object(sys, "argv", ["cli.py", "count", "--from", "x"]),
            patch.object(cli_module, "NewsletterArchiver", return_value=archiver),
        ):
            cli_module.main()

        assert "7 unseen messages match" in capsys.readouterr().out

    def test_failure_exits_1_and_closes(self) -> None:
        archiver = MagicMock()
        archiver.run.side_effect = MailConnectionError("connection refused")
        with (
            patch.object(sys, "argv", ["cli.py", "archive", "--from", "x"]),
            patch.object(cli_module, "NewsletterArchiver", return_value=archiver),
            pytest.raises(SystemExit) as exc,
        ):
            cli_module.main()

        assert exc.value.code == 1
        archiver.close.assert_called_once()

    def test_cancelled_run_exits_130(self) -> None:
        archiver = MagicMock()
        archiver.run.side_effect = ArchiveCancelled("cancelled")
        with (
            patch.object(sys, "argv", ["cli.py", "archive", "--from", "x"]),
            patch.object(cli_module, "NewsletterArchiver", return_value=archiver),
            pytest.raises(SystemExit) as exc,
        ):
            cli_module.main()

        assert exc.value.code == 130
        archiver.close.assert_called_once()

    def test_ctrl_c_requests_cooperative_cancel(self) -> None:
        """SIGINT during a run sets the event the archiver polls between requests."""
        archiver = MagicMock()

        def interrupted_run() -> ArchiveProgress:
            handler = signal.getsignal(signal.SIGINT)
            handler(signal.SIGINT, None)
            event = factory.call_args.kwargs["cancel_event"]
            assert event.is_set()
            raise ArchiveCancelled("Cancelled before the next mailbox request")

        archiver.run.side_effect = interrupted_run
        with (
            patch.object(sys, "argv", ["cli.py", "archive", "--from", "x"]),
            patch.object(cli_module, "NewsletterArchiver", return_value=archiver) as factory,
            pytest.raises(SystemExit) as exc,
        ):
            cli_module.main()

        assert exc.value.code == 130

    def test_previous_handler_restored(self) -> None:
        before = signal.getsignal(signal.SIGINT)
        archiver = MagicMock()
        archiver.count.return_value = 0
        with (
            patch.object(sys, "argv", ["cli.py", "count", "--from", "x"]),
            patch.object(cli_module, "NewsletterArchiver", return_value=archiver),
        ):
            cli_module.main()

        assert signal.getsignal(signal.SIGINT) is before


class TestInterruptHandler:
    """install_interrupt_handler() turns Ctrl-C into a cancellation request."""

    def test_first_signal_sets_event(self) -> None:
        event = threading.Event()
        previous = cli_module.install_interrupt_handler(event)
        try:
            signal.getsignal(signal.SIGINT)(signal.SIGINT, None)
            assert event.is_set()
        finally:
            signal.signal(signal.SIGINT, previous)

    def test_second_signal_aborts(self) -> None:
        event = threading.Event()
        event.set()
        previous = cli_module.install_interrupt_handler(event)
        try:
            with pytest.raises(KeyboardInterrupt):
                signal.getsignal(signal.SIGINT)(signal.SIGINT, None)
        finally:
            signal.signal(signal.SIGINT, previous)
