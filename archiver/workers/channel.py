"""
Pipe Channel
============

Bounded single-producer single-consumer byte channel connecting the archive
producer to an external consumer running on another thread.
"""

import io
import logging
import threading
import time
from typing import Optional

from stream_configs import DEFAULT_CHANNEL_CAPACITY
from stream_errors import ChannelClosedError, ChannelTimeoutError, StreamAbortedError

logger = logging.getLogger(__name__)


class PipeChannel:
    """
    Bounded blocking byte channel.

    write() blocks while the buffer is full and read() blocks while it is
    empty; both ends synchronize only through this object. Closing the writer
    is terminal: buffered bytes stay readable, then readers see end-of-stream
    (or StreamAbortedError when the writer closed with an error).
    """

    def __init__(self, capacity: int = DEFAULT_CHANNEL_CAPACITY,
                 write_timeout: Optional[float] = None):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self.write_timeout = write_timeout

        self._buffer = bytearray()
        self._cond = threading.Condition()
        self._writer_closed = False
        self._reader_closed = False
        self._error: Optional[BaseException] = None

        self.bytes_written = 0
        self.bytes_read = 0

    def write(self, data) -> int:
        """Write all of data, blocking until the reader makes room"""
        view = memoryview(data).cast('B')
        total = len(view)
        offset = 0
        deadline = (time.monotonic() + self.write_timeout
                    if self.write_timeout is not None else None)

        with self._cond:
            while offset < total:
                self._check_writable()
                free = self.capacity - len(self._buffer)
                if free <= 0:
                    self._wait(deadline)
                    continue

                chunk = view[offset:offset + free]
                self._buffer += chunk
                offset += len(chunk)
                self.bytes_written += len(chunk)
                self._cond.notify_all()

        return total

    def read(self, size: int = -1) -> bytes:
        """Read up to size bytes, blocking until data or end-of-stream"""
        if size == 0:
            return b''
        with self._cond:
            while not self._buffer:
                if self._reader_closed:
                    raise ValueError("read from closed channel")
                if self._writer_closed:
                    if self._error is not None:
                        raise StreamAbortedError(self._error)
                    return b''
                self._cond.wait()

            if size is None or size < 0 or size >= len(self._buffer):
                data = bytes(self._buffer)
                self._buffer.clear()
            else:
                data = bytes(self._buffer[:size])
                del self._buffer[:size]

            self.bytes_read += len(data)
            self._cond.notify_all()
            return data

    def close_writer(self, error: Optional[BaseException] = None) -> None:
        """Close the write end; error marks the stream as aborted"""
        with self._cond:
            if self._writer_closed:
                return
            self._writer_closed = True
            self._error = error
            self._cond.notify_all()
        if error is not None:
            logger.debug(f"Channel writer closed with error: {error}")

    def close_reader(self) -> None:
        """Close the read end; blocked and future writes fail"""
        with self._cond:
            self._reader_closed = True
            self._buffer.clear()
            self._cond.notify_all()

    @property
    def writer_closed(self) -> bool:
        return self._writer_closed

    @property
    def reader_closed(self) -> bool:
        return self._reader_closed

    @property
    def buffered(self) -> int:
        with self._cond:
            return len(self._buffer)

    def _check_writable(self) -> None:
        if self._writer_closed:
            raise ChannelClosedError("write to a channel whose writer is closed")
        if self._reader_closed:
            raise ChannelClosedError("write to a channel whose reader is closed")

    def _wait(self, deadline: Optional[float]) -> None:
        if deadline is None:
            self._cond.wait()
            return
        remaining = deadline - time.monotonic()
        if remaining <= 0 or not self._cond.wait(remaining):
            raise ChannelTimeoutError(
                f"Channel write blocked for more than {self.write_timeout}s"
            )


class PipeWriter(io.RawIOBase):
    """Raw write end of a PipeChannel"""

    def __init__(self, channel: PipeChannel):
        super().__init__()
        self.channel = channel
        self._abort_error: Optional[BaseException] = None

    def writable(self) -> bool:
        return True

    def write(self, b) -> int:
        if self.closed:
            raise ValueError("write to closed file")
        return self.channel.write(b)

    def abort(self, error: BaseException) -> None:
        """Make the coming close() report error to the reader"""
        self._abort_error = error

    def close(self) -> None:
        if not self.closed:
            self.channel.close_writer(self._abort_error)
        super().close()


class PipeReader(io.RawIOBase):
    """Raw read end of a PipeChannel"""

    def __init__(self, channel: PipeChannel):
        super().__init__()
        self.channel = channel

    def readable(self) -> bool:
        return True

    def readinto(self, b) -> int:
        if self.closed:
            raise ValueError("read from closed file")
        data = self.channel.read(len(b))
        n = len(data)
        b[:n] = data
        return n

    def close(self) -> None:
        if not self.closed:
            self.channel.close_reader()
        super().close()
