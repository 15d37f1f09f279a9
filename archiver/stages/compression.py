"""
Compression Sink
================

Layers a write buffer, a gzip compressor and a streaming tar writer on top of
a raw byte sink.
"""

import gzip
import io
import logging
import tarfile
from typing import BinaryIO, Callable, List, Optional, Tuple

from base_classes import ArchiveEntry
from stream_configs import DEFAULT_BUFFER_SIZE
from stream_errors import ArchiveWriteError, FinalizationError

logger = logging.getLogger(__name__)


class TarStreamWriter:
    """
    Forward-only tar writer with an explicit entry lifecycle.

    Entries are written as header, payload, padding; the writer never seeks,
    so it can sit on top of a compressor that feeds a pipe. GNU format
    is used so long names and sizes beyond 8GB are encoded instead of
    rejected.
    """

    def __init__(self,
                 fileobj: BinaryIO,
                 format: int = tarfile.GNU_FORMAT,
                 encoding: str = 'utf-8',
                 errors: str = 'surrogateescape'):
        self.fileobj = fileobj
        self.format = format
        self.encoding = encoding
        self.errors = errors

        self.offset = 0
        self._current: Optional[tarfile.TarInfo] = None
        self._remaining = 0
        self._finished = False
        self._closed = False

    def put_entry(self, info: tarfile.TarInfo) -> None:
        """Write the header of a new entry"""
        self._check_open()
        if self._current is not None:
            raise ArchiveWriteError(f"Entry '{self._current.name}' was not closed")

        self._write(info.tobuf(self.format, self.encoding, self.errors))
        self._current = info
        self._remaining = info.size if info.isreg() else 0

    def write(self, data: bytes) -> int:
        """Write payload bytes of the current entry"""
        if self._current is None:
            raise ArchiveWriteError("No current entry to write to")
        if len(data) > self._remaining:
            raise ArchiveWriteError(
                f"Request to write {len(data)} bytes exceeds size in header "
                f"of {self._current.size} bytes for entry '{self._current.name}'"
            )
        self._write(data)
        self._remaining -= len(data)
        return len(data)

    def close_entry(self) -> None:
        """Pad the current entry to a block boundary"""
        if self._current is None:
            raise ArchiveWriteError("No current entry to close")
        if self._remaining:
            raise ArchiveWriteError(
                f"Entry '{self._current.name}' closed with {self._remaining} "
                f"of {self._current.size} bytes unwritten"
            )
        self._pad(tarfile.BLOCKSIZE)
        self._current = None

    def finish(self) -> None:
        """Write the end-of-archive marker and pad to a full record"""
        if self._finished:
            return
        if self._current is not None:
            raise ArchiveWriteError("This archive contains unclosed entries")
        self._write(tarfile.NUL * (tarfile.BLOCKSIZE * 2))
        self._pad(tarfile.RECORDSIZE)
        self._finished = True

    def close(self) -> None:
        if self._closed:
            return
        try:
            self.finish()
        finally:
            self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self) -> None:
        if self._closed or self._finished:
            raise ArchiveWriteError("Archive has already been finished")

    def _pad(self, boundary: int) -> None:
        remainder = self.offset % boundary
        if remainder:
            self._write(tarfile.NUL * (boundary - remainder))

    def _write(self, data: bytes) -> None:
        self.fileobj.write(data)
        self.offset += len(data)


class CompressionSink:
    """
    Buffer -> gzip -> tar chain over a raw byte sink.

    finish() closes the layers outermost first and keeps going when a layer
    fails, so every layer releases its resources and the raw sink always ends
    up closed.
    """

    def __init__(self,
                 raw: io.RawIOBase,
                 buffer_size: int = DEFAULT_BUFFER_SIZE,
                 compression_level: int = 6):
        """
        Initialize the sink chain.

        Args:
            raw: Unbuffered byte sink, typically the write end of a PipeChannel
            buffer_size: Size of the block buffer in front of the sink
            compression_level: gzip compression level (0-9)
        """
        self.raw = raw
        self.buffered = io.BufferedWriter(raw, buffer_size)
        # mtime=0 keeps the gzip header independent of wall-clock time
        self.gzip = gzip.GzipFile(fileobj=self.buffered, mode='wb',
                                  compresslevel=compression_level, mtime=0)
        self.tar = TarStreamWriter(self.gzip)
        self._finished = False

        logger.debug(f"Initialized CompressionSink with buffer_size={buffer_size}, "
                     f"compression_level={compression_level}")

    def write_entry(self, entry: ArchiveEntry) -> None:
        self.tar.put_entry(entry.to_tarinfo())

    def write_entry_payload(self, data: bytes) -> int:
        return self.tar.write(data)

    def close_entry(self) -> None:
        self.tar.close_entry()

    def finish(self) -> None:
        """Run every close step in order, then raise the first failure"""
        if self._finished:
            return
        self._finished = True

        errors: List[Tuple[str, Exception]] = []
        self._run_steps([
            ('tar_finish', self.tar.finish),
            ('tar_close', self.tar.close),
            ('gzip_close', self.gzip.close),
            ('buffer_flush', self.buffered.flush),
        ], errors)

        # The buffer close also closes the raw sink; an archive whose trailer
        # never made it out must reach the reader as aborted, not complete
        if errors:
            self.abort(errors[0][1])

        self._run_steps([
            ('buffer_close', self.buffered.close),
            ('sink_close', self._close_raw),
        ], errors)

        if errors:
            raise FinalizationError(errors)

    def abort(self, error: BaseException) -> None:
        """Mark the raw sink as aborted if it supports it"""
        abort = getattr(self.raw, 'abort', None)
        if abort is not None:
            abort(error)

    @staticmethod
    def _run_steps(steps: List[Tuple[str, Callable[[], None]]],
                   errors: List[Tuple[str, Exception]]) -> None:
        for name, step in steps:
            try:
                step()
            except Exception as e:
                logger.error(f"Close step {name} failed: {e}")
                errors.append((name, e))

    def _close_raw(self) -> None:
        if self.raw.closed:
            return
        try:
            self.raw.flush()
        finally:
            self.raw.close()

    @property
    def finished(self) -> bool:
        return self._finished
