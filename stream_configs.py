"""
Stream Configurations for Different Use Cases
=============================================

This module provides the option set for one archive operation and a few
pre-configured settings for common scenarios.
"""

from dataclasses import dataclass
from typing import Optional
import logging

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_SIZE = 1024 * 1024  # 1MB
DEFAULT_CHANNEL_CAPACITY = 1024 * 1024  # 1MB
DEFAULT_COPY_CHUNK_SIZE = 64 * 1024  # 64KB

UNREADABLE_SKIP = 'skip'
UNREADABLE_RAISE = 'raise'


@dataclass
class StreamOptions:
    """Configuration settings for one tar.gz stream"""

    # Buffering settings
    buffer_size: int = DEFAULT_BUFFER_SIZE
    channel_capacity: int = DEFAULT_CHANNEL_CAPACITY
    copy_chunk_size: int = DEFAULT_COPY_CHUNK_SIZE

    # Compression settings
    compression_level: int = 6

    # Channel settings
    write_timeout: Optional[float] = None

    # Traversal settings
    unreadable_directory: str = UNREADABLE_SKIP
    sort_children: bool = False

    # Output settings
    verbose: bool = True

    def __post_init__(self) -> None:
        """Validate configuration parameters"""
        if self.buffer_size <= 0:
            raise ValueError("buffer_size must be positive")
        if self.channel_capacity <= 0:
            raise ValueError("channel_capacity must be positive")
        if self.copy_chunk_size <= 0:
            raise ValueError("copy_chunk_size must be positive")
        if self.compression_level < 0 or self.compression_level > 9:
            raise ValueError("compression_level must be between 0 and 9")
        if self.write_timeout is not None and self.write_timeout <= 0:
            raise ValueError("write_timeout must be positive")
        if self.unreadable_directory not in [UNREADABLE_SKIP, UNREADABLE_RAISE]:
            raise ValueError(f"Invalid unreadable_directory: {self.unreadable_directory}")


class ConfigPresets:
    """Pre-configured settings for common use cases"""

    @staticmethod
    def default() -> StreamOptions:
        """1MB buffer and channel, verbose output"""
        return StreamOptions()

    @staticmethod
    def low_memory() -> StreamOptions:
        """
        Optimized for small hosts
        - 64KB write buffer and channel
        - Faster compression
        """
        return StreamOptions(
            buffer_size=64 * 1024,
            channel_capacity=64 * 1024,
            copy_chunk_size=16 * 1024,
            compression_level=1,
        )

    @staticmethod
    def reproducible() -> StreamOptions:
        """
        Byte-stable archives for the same tree
        - Sorted sibling order
        - Unreadable directories abort instead of silently shrinking the archive
        """
        return StreamOptions(
            sort_children=True,
            unreadable_directory=UNREADABLE_RAISE,
        )
