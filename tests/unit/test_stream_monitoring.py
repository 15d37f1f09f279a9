"""
Unit tests for progress reporting and metrics.
"""

import io
from unittest.mock import Mock, patch

import psutil
import pytest

from base_classes import ArchiveEntry, EntryKind, StreamObserver
from stream_monitoring import CompositeObserver, ConsoleReporter, StreamMetrics, StreamStats


@pytest.fixture
def file_entry():
    return ArchiveEntry(name="data/a.txt", kind=EntryKind.FILE, size=5)


@pytest.fixture
def link_entry():
    return ArchiveEntry(name="data/link", kind=EntryKind.SYMLINK, linkname="a.txt")


class TestConsoleReporter:
    """Test the exact progress line formats"""

    def test_lines(self, file_entry, link_entry):
        out = io.StringIO()
        reporter = ConsoleReporter(out)

        reporter.directory_entered("/x/data", None)
        reporter.file_added("/x/data/a.txt", file_entry)
        reporter.symlink_added("/x/data/link", link_entry)
        reporter.symlink_outside_root("/x/data/esc", "/etc/passwd")
        reporter.symlink_target_missing("/x/data/dangling", "/x/data/nothing")
        reporter.special_file_skipped("/x/data/fifo")
        reporter.stream_done()

        assert out.getvalue().splitlines() == [
            "entering directory:/x/data",
            "adding file:/x/data/a.txt",
            "adding symlink:/x/data/link -> a.txt",
            "skipping symlink whose target is outside the archive:/x/data/esc -> /etc/passwd",
            "skipping symlink whose target is missing:/x/data/dangling -> /x/data/nothing",
            "skipping special file:/x/data/fifo",
            "tar.gz stream done",
        ]

    def test_unreadable_directory_line(self):
        out = io.StringIO()
        ConsoleReporter(out).unreadable_directory("/x/locked", PermissionError("denied"))

        assert out.getvalue() == "skipping unreadable directory:/x/locked (denied)\n"

    def test_defaults_to_stdout(self, capsys):
        ConsoleReporter().stream_done()
        assert capsys.readouterr().out == "tar.gz stream done\n"

    def test_silent_on_failure(self):
        out = io.StringIO()
        ConsoleReporter(out).stream_failed(RuntimeError("x"))
        assert out.getvalue() == ""


class TestCompositeObserver:
    """Test notification fan-out"""

    def test_every_observer_is_notified(self, file_entry):
        first, second = Mock(spec=StreamObserver), Mock(spec=StreamObserver)
        composite = CompositeObserver([first])
        composite.add(second)

        composite.file_added("/p", file_entry)
        composite.payload_copied(file_entry, 5)
        composite.stream_done()

        for observer in (first, second):
            observer.file_added.assert_called_once_with("/p", file_entry)
            observer.payload_copied.assert_called_once_with(file_entry, 5)
            observer.stream_done.assert_called_once_with()

    def test_empty_composite(self):
        CompositeObserver().stream_failed(RuntimeError("nobody listens"))


class TestStreamMetrics:
    """Test counters kept by StreamMetrics"""

    def test_counts(self, file_entry, link_entry):
        metrics = StreamMetrics()

        metrics.directory_entered("/x/data", None)
        metrics.file_added("/x/data/a.txt", file_entry)
        metrics.payload_copied(file_entry, 5)
        metrics.symlink_added("/x/data/link", link_entry)
        metrics.symlink_outside_root("/x/data/esc", "/etc")
        metrics.symlink_target_missing("/x/data/d", "/x/data/n")
        metrics.special_file_skipped("/x/data/fifo")
        metrics.unreadable_directory("/x/data/locked", PermissionError())
        metrics.stream_done()

        stats = metrics.stats
        assert (stats.files, stats.directories, stats.symlinks) == (1, 1, 1)
        assert stats.entries == 3
        assert stats.skipped == 3
        assert stats.unreadable_directories == 1
        assert stats.payload_bytes == 5
        assert stats.end_time is not None
        assert stats.memory_peak >= stats.memory_start > 0

    def test_failure_is_recorded(self):
        metrics = StreamMetrics()
        metrics.stream_failed(OSError("boom"))

        assert metrics.stats.errors == ["OSError: boom"]
        assert metrics.stats.end_time is not None

    def test_memory_sample_errors_are_tolerated(self):
        with patch("stream_monitoring.psutil.Process") as process_cls:
            process_cls.return_value.memory_info.side_effect = psutil.AccessDenied()
            metrics = StreamMetrics()

        assert metrics.stats.memory_start == 0


class TestStreamStats:
    """Test derived statistics"""

    def test_ratios(self):
        stats = StreamStats(start_time=100.0, end_time=102.0,
                            payload_bytes=4 * 1024 * 1024, compressed_bytes=1024 * 1024)

        assert stats.duration == 2.0
        assert stats.throughput_mb_per_sec == 2.0
        assert stats.compression_ratio == 0.25

    def test_empty_stats(self):
        stats = StreamStats(start_time=100.0, end_time=100.0)

        assert stats.throughput_mb_per_sec == 0.0
        assert stats.compression_ratio == 0.0

    def test_to_dict(self):
        stats = StreamStats(start_time=1.0, end_time=2.0, files=2, skipped_missing=1)
        data = stats.to_dict()

        assert data['files'] == 2
        assert data['skipped'] == 1
        assert data['duration'] == 1.0
