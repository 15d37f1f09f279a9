"""
tar.gz Directory Streaming
==========================

Creates a tar.gz archive of a directory without a temporary file and sends it
through a bounded in-process pipe, so a concurrent consumer (an upload client,
a file writer) can read it while it is being produced.

Usage:
    from tar_gz_stream import TarGzStream

    stream = TarGzStream("/data")
    reader = stream.prepare_channel()
    stream.start()                 # producer on its own thread
    upload(reader)                 # consumer reads incrementally
    stats = stream.result()
"""

import asyncio
import logging
import shutil
from typing import AsyncIterator, BinaryIO, Callable, Optional, Tuple

from archiver.workers.channel import PipeReader
from archiver.workers.producer import ProducerState, StreamProducer
from stream_configs import StreamOptions
from stream_errors import StreamAbortedError
from stream_monitoring import StreamStats

logger = logging.getLogger(__name__)

DEFAULT_READ_SIZE = 64 * 1024


class TarGzStream(StreamProducer):
    """Producer with consumer-side helpers for the common cases"""

    def write_to(self,
                 output: BinaryIO,
                 read_size: int = DEFAULT_READ_SIZE,
                 on_chunk: Optional[Callable[[bytes], None]] = None) -> StreamStats:
        """
        Produce the archive on a dedicated thread and copy it into output.

        Args:
            output: Binary file object receiving the tar.gz bytes
            read_size: Bytes pulled from the channel per read
            on_chunk: Called with every chunk before it is written

        Returns:
            Final statistics for the operation
        """
        reader = self.prepare_channel()
        self.start()
        try:
            if on_chunk is None:
                shutil.copyfileobj(reader, output, read_size)
            else:
                while True:
                    chunk = reader.read(read_size)
                    if not chunk:
                        break
                    on_chunk(chunk)
                    output.write(chunk)
        except StreamAbortedError as e:
            # result() raises the producer's own error below
            logger.debug(f"Stream aborted while copying to output: {e}")
        finally:
            # Unblocks the producer if we stopped reading early
            reader.close()
        return self.result()

    @property
    def finished(self) -> bool:
        return self.state is ProducerState.FINISHED


def prepare_channel(root_path: str,
                    options: Optional[StreamOptions] = None,
                    **kwargs) -> Tuple[TarGzStream, PipeReader]:
    """Create a stream for root_path and return it with its read end"""
    stream = TarGzStream(root_path, options, **kwargs)
    return stream, stream.prepare_channel()


async def aiter_stream(reader: PipeReader,
                       read_size: int = DEFAULT_READ_SIZE) -> AsyncIterator[bytes]:
    """
    Iterate over the read end from asyncio code.

    Blocking channel reads run in the default executor so the event loop
    keeps running while the producer thread fills the pipe.

    Yields:
        Compressed archive chunks in stream order
    """
    loop = asyncio.get_running_loop()
    while True:
        chunk = await loop.run_in_executor(None, reader.read, read_size)
        if not chunk:
            break
        yield chunk
