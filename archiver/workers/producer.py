"""
Stream Producer
===============

Owns the write end of the channel and drives traversal, encoding and
compression on a single dedicated thread.
"""

import logging
import os
import threading
import time
from enum import Enum
from typing import BinaryIO, Iterable, Optional, TextIO

from base_classes import ArchiveEntry, StreamObserver
from security_validation import SymlinkValidator
from stream_configs import StreamOptions
from stream_errors import (
    FinalizationError, ProducerStateError, StreamSetupError, StreamingError
)
from stream_monitoring import CompositeObserver, ConsoleReporter, StreamMetrics, StreamStats

from ..stages.compression import CompressionSink
from ..stages.encoding import EntryEncoder
from ..stages.traversal import TreeWalker
from .channel import PipeChannel, PipeReader, PipeWriter

logger = logging.getLogger(__name__)


class ProducerState(Enum):
    """Producer lifecycle states"""
    IDLE = "idle"
    PREPARING = "preparing"
    STREAMING = "streaming"
    FINISHED = "finished"
    FAILED = "failed"


class StreamProducer:
    """
    Streams one directory tree as tar.gz into a PipeChannel.

    Lifecycle: prepare_channel() hands out the read end, start_streaming()
    (or start() + result()) writes the archive. Every failure still runs the
    sink's finish cascade so the channel always ends up closed; the reader
    then sees StreamAbortedError instead of a clean end-of-stream.

    Example:
        >>> producer = StreamProducer("/data")
        >>> reader = producer.prepare_channel()
        >>> producer.start()
        >>> upload(reader)
        >>> stats = producer.result()
    """

    def __init__(self,
                 root_path: str,
                 options: Optional[StreamOptions] = None,
                 observers: Optional[Iterable[StreamObserver]] = None,
                 output: Optional[TextIO] = None):
        """
        Initialize the producer.

        Args:
            root_path: Directory (or single node) the archive is rooted at
            options: Stream options, defaults to StreamOptions()
            observers: Extra observers notified of every traversal decision
            output: Text stream for verbose lines, defaults to stdout
        """
        self.root_path = os.fspath(root_path)
        self.options = options or StreamOptions()

        self.metrics = StreamMetrics()
        self.observer = CompositeObserver(observers)
        self.observer.add(self.metrics)
        if self.options.verbose:
            self.observer.add(ConsoleReporter(output))

        self.state = ProducerState.IDLE
        self._state_lock = threading.Lock()

        self.channel: Optional[PipeChannel] = None
        self._writer: Optional[PipeWriter] = None
        self._sink: Optional[CompressionSink] = None
        self._encoder: Optional[EntryEncoder] = None

        self._thread: Optional[threading.Thread] = None
        self._result: Optional[StreamStats] = None
        self._error: Optional[BaseException] = None

    def _transition(self, operation: str, expected: ProducerState,
                    target: ProducerState) -> None:
        with self._state_lock:
            if self.state is not expected:
                raise ProducerStateError(operation, self.state)
            self.state = target
        logger.debug(f"Producer {self.root_path}: {expected.value} -> {target.value}")

    def prepare_channel(self) -> PipeReader:
        """Allocate the channel and the compression chain around its write end

        Returns:
            The read end the consumer pulls the archive from

        Raises:
            StreamSetupError: if the root is missing or allocation fails
        """
        self._transition('prepare channel', ProducerState.IDLE, ProducerState.PREPARING)

        try:
            validator = SymlinkValidator(self.root_path)
            self.channel = PipeChannel(self.options.channel_capacity,
                                       self.options.write_timeout)
            self._writer = PipeWriter(self.channel)
            self._sink = CompressionSink(self._writer,
                                         buffer_size=self.options.buffer_size,
                                         compression_level=self.options.compression_level)
        except (OSError, ValueError, MemoryError) as e:
            self.state = ProducerState.FAILED
            raise StreamSetupError(f"Cannot prepare stream for {self.root_path}", e,
                                   details={'root': self.root_path}) from e

        self._encoder = EntryEncoder(validator, self.observer)
        return PipeReader(self.channel)

    def start_streaming(self) -> StreamStats:
        """Write the whole archive into the channel; blocks until done

        Returns:
            Final statistics for the operation

        Raises:
            StreamingError: if traversal or writing failed
            ProducerStateError: if prepare_channel() was not called first
        """
        self._transition('start streaming', ProducerState.PREPARING, ProducerState.STREAMING)
        self.metrics.stats.start_time = time.time()

        error: Optional[BaseException] = None
        try:
            self._stream_tree()
        except Exception as e:
            logger.error(f"Streaming {self.root_path} failed: {e}", exc_info=True)
            error = e
            self._sink.abort(e)

        try:
            self._sink.finish()
        except FinalizationError as e:
            if error is None:
                error = e
            else:
                logger.warning(f"Finalization after failure also failed: {e}")

        self.metrics.stats.compressed_bytes = self.channel.bytes_written

        if error is not None:
            self.state = ProducerState.FAILED
            self.observer.stream_failed(error)
            raise StreamingError(f"Failed to stream {self.root_path}", error,
                                 details={'root': self.root_path,
                                          'entries': self.metrics.stats.entries}) from error

        self.state = ProducerState.FINISHED
        self.observer.stream_done()
        return self.metrics.stats

    def _stream_tree(self) -> None:
        walker = TreeWalker(self._encoder, self.observer,
                            unreadable_directory=self.options.unreadable_directory,
                            sort_children=self.options.sort_children)
        for entry in walker.walk(self.root_path):
            if entry.is_file:
                self._write_file(entry)
            else:
                self._sink.write_entry(entry)
                self._sink.close_entry()

    def _write_file(self, entry: ArchiveEntry) -> None:
        # Opened before the header goes out so a vanished file can still be skipped
        try:
            source = self._encoder.open_payload(entry)
        except FileNotFoundError:
            logger.warning(f"File vanished before it could be read, skipping: {entry.source_path}")
            return

        with source:
            self._sink.write_entry(entry)
            copied = self._copy_payload(entry, source)
        self._sink.close_entry()
        self.observer.payload_copied(entry, copied)

    def _copy_payload(self, entry: ArchiveEntry, source: BinaryIO) -> int:
        """Copy exactly entry.size bytes, padding or truncating on size drift"""
        chunk_size = self.options.copy_chunk_size
        remaining = entry.size

        while remaining > 0:
            chunk = source.read(min(chunk_size, remaining))
            if not chunk:
                break
            self._sink.write_entry_payload(chunk)
            remaining -= len(chunk)

        copied = entry.size - remaining
        if remaining:
            logger.warning(f"{entry.source_path} shrank by {remaining} bytes while archiving, "
                           f"padding with zeros")
            while remaining > 0:
                pad = min(chunk_size, remaining)
                self._sink.write_entry_payload(b'\0' * pad)
                remaining -= pad
        elif source.read(1):
            logger.warning(f"{entry.source_path} grew while archiving, "
                           f"truncated to {entry.size} bytes")
        return copied

    def run(self) -> None:
        """Thread target: stores the outcome for result()"""
        try:
            self._result = self.start_streaming()
        except BaseException as e:
            self._error = e

    def start(self) -> threading.Thread:
        """Run start_streaming() on one dedicated thread"""
        if self._thread is not None:
            raise ProducerStateError('start', self.state)
        name = os.path.basename(os.path.abspath(self.root_path)) or 'root'
        self._thread = threading.Thread(target=self.run, name=f"tar-gz-stream-{name}",
                                        daemon=True)
        self._thread.start()
        return self._thread

    def result(self, timeout: Optional[float] = None) -> StreamStats:
        """Wait for the producer thread and return its stats or raise its error"""
        if self._thread is None:
            raise ProducerStateError('wait for result', self.state)
        self._thread.join(timeout)
        if self._thread.is_alive():
            raise TimeoutError(f"Producer for {self.root_path} still running")
        if self._error is not None:
            raise self._error
        return self._result
