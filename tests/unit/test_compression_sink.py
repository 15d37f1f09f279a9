"""
Unit tests for the compression sink
===================================

Tests for archiver/stages/compression.py including:
- TarStreamWriter entry lifecycle and padding
- CompressionSink output readable as tar.gz
- Cascading finish: every close step runs, first error reported
"""

import gzip
import io
import tarfile
from unittest.mock import Mock, patch

import pytest

from archiver.stages.compression import CompressionSink, TarStreamWriter
from base_classes import ArchiveEntry, EntryKind
from stream_errors import ArchiveWriteError, FinalizationError


class RecordingRaw(io.RawIOBase):
    """Raw sink that keeps everything written to it"""

    def __init__(self):
        super().__init__()
        self.data = bytearray()
        self.abort_error = None

    def writable(self):
        return True

    def write(self, b):
        self.data += b
        return len(b)

    def abort(self, error):
        self.abort_error = error


def file_entry(name, payload):
    return ArchiveEntry(name=name, kind=EntryKind.FILE, size=len(payload), mode=0o644)


def read_archive(data):
    return tarfile.open(fileobj=io.BytesIO(bytes(data)), mode="r:gz")


class TestTarStreamWriter:
    """Test TarStreamWriter block layout and contract checks"""

    def test_empty_archive_is_one_record(self):
        out = io.BytesIO()
        writer = TarStreamWriter(out)
        writer.finish()

        assert len(out.getvalue()) == tarfile.RECORDSIZE
        assert out.getvalue() == tarfile.NUL * tarfile.RECORDSIZE

    def test_entry_is_padded_to_block(self):
        out = io.BytesIO()
        writer = TarStreamWriter(out)
        writer.put_entry(file_entry("a.txt", b"hello").to_tarinfo())
        writer.write(b"hello")
        writer.close_entry()

        assert writer.offset == 2 * tarfile.BLOCKSIZE

    def test_output_is_readable_by_tarfile(self):
        out = io.BytesIO()
        writer = TarStreamWriter(out)
        writer.put_entry(file_entry("a.txt", b"hello").to_tarinfo())
        writer.write(b"hel")
        writer.write(b"lo")
        writer.close_entry()
        writer.close()

        out.seek(0)
        with tarfile.open(fileobj=out, mode="r:") as tar:
            assert tar.extractfile("a.txt").read() == b"hello"

    def test_write_beyond_header_size_fails(self):
        writer = TarStreamWriter(io.BytesIO())
        writer.put_entry(file_entry("a.txt", b"hi").to_tarinfo())

        with pytest.raises(ArchiveWriteError, match="exceeds size in header"):
            writer.write(b"too long")

    def test_close_entry_with_missing_bytes_fails(self):
        writer = TarStreamWriter(io.BytesIO())
        writer.put_entry(file_entry("a.txt", b"hello").to_tarinfo())
        writer.write(b"he")

        with pytest.raises(ArchiveWriteError, match="3 of 5 bytes unwritten"):
            writer.close_entry()

    def test_new_entry_requires_closed_previous(self):
        writer = TarStreamWriter(io.BytesIO())
        writer.put_entry(file_entry("a.txt", b"").to_tarinfo())

        with pytest.raises(ArchiveWriteError, match="was not closed"):
            writer.put_entry(file_entry("b.txt", b"").to_tarinfo())

    def test_finish_with_open_entry_fails(self):
        writer = TarStreamWriter(io.BytesIO())
        writer.put_entry(file_entry("a.txt", b"").to_tarinfo())

        with pytest.raises(ArchiveWriteError, match="unclosed entries"):
            writer.finish()

    def test_write_without_entry_fails(self):
        with pytest.raises(ArchiveWriteError):
            TarStreamWriter(io.BytesIO()).write(b"x")

    def test_put_after_finish_fails(self):
        writer = TarStreamWriter(io.BytesIO())
        writer.close()

        assert writer.closed
        with pytest.raises(ArchiveWriteError, match="already been finished"):
            writer.put_entry(file_entry("a.txt", b"").to_tarinfo())

    def test_finish_is_idempotent(self):
        out = io.BytesIO()
        writer = TarStreamWriter(out)
        writer.finish()
        writer.finish()
        writer.close()

        assert len(out.getvalue()) == tarfile.RECORDSIZE


class TestCompressionSink:
    """Test CompressionSink chain and finalization"""

    def test_round_trip_entries(self):
        raw = RecordingRaw()
        sink = CompressionSink(raw, buffer_size=1024)

        sink.write_entry(ArchiveEntry(name="data", kind=EntryKind.DIRECTORY, mode=0o755))
        sink.close_entry()
        sink.write_entry(file_entry("data/a.txt", b"hello"))
        sink.write_entry_payload(b"hello")
        sink.close_entry()
        sink.write_entry(ArchiveEntry(name="data/link", kind=EntryKind.SYMLINK,
                                      linkname="a.txt", mode=0o777))
        sink.close_entry()
        sink.finish()

        assert raw.closed
        with read_archive(raw.data) as tar:
            assert tar.getnames() == ["data", "data/a.txt", "data/link"]
            assert tar.getmember("data").isdir()
            assert tar.extractfile("data/a.txt").read() == b"hello"
            assert tar.getmember("data/link").linkname == "a.txt"

    def test_output_is_single_gzip_member(self):
        raw = RecordingRaw()
        sink = CompressionSink(raw)
        sink.finish()

        assert bytes(raw.data[:2]) == b"\x1f\x8b"
        assert gzip.decompress(bytes(raw.data)) == tarfile.NUL * tarfile.RECORDSIZE

    def test_nothing_reaches_raw_until_buffer_fills(self):
        raw = RecordingRaw()
        sink = CompressionSink(raw, buffer_size=1024 * 1024)
        sink.write_entry(file_entry("a.txt", b"x" * 10))
        sink.write_entry_payload(b"x" * 10)
        sink.close_entry()

        assert len(raw.data) == 0
        sink.finish()
        assert len(raw.data) > 0

    def test_compression_level_is_applied(self):
        payload = bytes(range(256)) * 512

        sizes = []
        for level in (0, 9):
            raw = RecordingRaw()
            sink = CompressionSink(raw, compression_level=level)
            sink.write_entry(file_entry("p.bin", payload))
            sink.write_entry_payload(payload)
            sink.close_entry()
            sink.finish()
            sizes.append(len(raw.data))

        assert sizes[0] > sizes[1]

    def test_finish_runs_in_order(self):
        raw = RecordingRaw()
        sink = CompressionSink(raw)
        calls = []

        sink.tar = Mock(finish=Mock(side_effect=lambda: calls.append("tar_finish")),
                        close=Mock(side_effect=lambda: calls.append("tar_close")))
        sink.gzip = Mock(close=Mock(side_effect=lambda: calls.append("gzip_close")))
        sink.buffered = Mock(flush=Mock(side_effect=lambda: calls.append("buffer_flush")),
                             close=Mock(side_effect=lambda: calls.append("buffer_close")))
        with patch.object(sink, "_close_raw", side_effect=lambda: calls.append("sink_close")):
            sink.finish()

        assert calls == ["tar_finish", "tar_close", "gzip_close", "buffer_flush",
                         "buffer_close", "sink_close"]

    def test_failed_final_flush_aborts_the_raw_sink(self):
        """Bytes stuck in the buffer mean the reader must not see a clean end"""
        raw = RecordingRaw()
        sink = CompressionSink(raw, buffer_size=1024 * 1024)
        sink.write_entry(file_entry("a.txt", b"hello"))
        sink.write_entry_payload(b"hello")
        sink.close_entry()

        flush_error = OSError("pipe write timed out")
        with patch.object(raw, "write", side_effect=flush_error):
            with pytest.raises(FinalizationError) as exc_info:
                sink.finish()

        assert exc_info.value.errors[0] == ("buffer_flush", flush_error)
        assert raw.abort_error is flush_error
        assert raw.closed

    def test_finish_continues_after_failure(self):
        raw = RecordingRaw()
        sink = CompressionSink(raw)
        first = OSError("gzip trailer failed")

        with patch.object(sink.gzip, "close", side_effect=first):
            with pytest.raises(FinalizationError) as exc_info:
                sink.finish()

        error = exc_info.value
        assert error.cause is first
        assert error.details["failed_steps"] == ["gzip_close"]
        # Later steps still ran
        assert raw.closed
        # The raw sink was told the archive is incomplete
        assert raw.abort_error is first

    def test_first_error_is_reported(self):
        sink = CompressionSink(RecordingRaw())
        tar_error = ArchiveWriteError("tar broke")
        gzip_error = OSError("gzip broke")

        with patch.object(sink.tar, "finish", side_effect=tar_error), \
                patch.object(sink.tar, "close", side_effect=tar_error), \
                patch.object(sink.gzip, "close", side_effect=gzip_error):
            with pytest.raises(FinalizationError) as exc_info:
                sink.finish()

        assert exc_info.value.cause is tar_error
        assert [name for name, _ in exc_info.value.errors] == [
            "tar_finish", "tar_close", "gzip_close"
        ]

    def test_finish_is_idempotent(self):
        raw = RecordingRaw()
        sink = CompressionSink(raw)
        sink.finish()
        size = len(raw.data)
        sink.finish()

        assert sink.finished
        assert len(raw.data) == size

    def test_abort_ignores_sinks_without_abort(self):
        sink = CompressionSink(io.BytesIO())
        sink.abort(RuntimeError("x"))
