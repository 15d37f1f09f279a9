"""
Stream Monitoring and Progress Reporting
========================================

Observers that turn producer notifications into console progress lines and
throughput/memory metrics.
"""

import logging
import sys
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, TextIO

import psutil

from base_classes import ArchiveEntry, StreamObserver

logger = logging.getLogger(__name__)

MEMORY_SAMPLE_EVERY = 256  # entries


class CompositeObserver(StreamObserver):
    """Fans every notification out to a list of observers"""

    def __init__(self, observers: Optional[Iterable[StreamObserver]] = None):
        self.observers: List[StreamObserver] = list(observers or [])

    def add(self, observer: StreamObserver) -> None:
        self.observers.append(observer)

    def file_added(self, path, entry):
        for observer in self.observers:
            observer.file_added(path, entry)

    def symlink_added(self, path, entry):
        for observer in self.observers:
            observer.symlink_added(path, entry)

    def directory_entered(self, path, entry):
        for observer in self.observers:
            observer.directory_entered(path, entry)

    def symlink_outside_root(self, path, target):
        for observer in self.observers:
            observer.symlink_outside_root(path, target)

    def symlink_target_missing(self, path, missing):
        for observer in self.observers:
            observer.symlink_target_missing(path, missing)

    def special_file_skipped(self, path):
        for observer in self.observers:
            observer.special_file_skipped(path)

    def unreadable_directory(self, path, error):
        for observer in self.observers:
            observer.unreadable_directory(path, error)

    def payload_copied(self, entry, nbytes):
        for observer in self.observers:
            observer.payload_copied(entry, nbytes)

    def stream_done(self):
        for observer in self.observers:
            observer.stream_done()

    def stream_failed(self, error):
        for observer in self.observers:
            observer.stream_failed(error)


class ConsoleReporter(StreamObserver):
    """Prints one line per visited node, per skip and on completion"""

    def __init__(self, stream: Optional[TextIO] = None):
        self._stream = stream
        self._lock = threading.Lock()

    @property
    def stream(self) -> TextIO:
        # Looked up late so redirected/captured stdout is honoured
        return self._stream if self._stream is not None else sys.stdout

    def _print(self, line: str) -> None:
        with self._lock:
            print(line, file=self.stream, flush=True)

    def file_added(self, path, entry):
        self._print(f"adding file:{path}")

    def symlink_added(self, path, entry):
        self._print(f"adding symlink:{path} -> {entry.linkname}")

    def directory_entered(self, path, entry):
        self._print(f"entering directory:{path}")

    def symlink_outside_root(self, path, target):
        self._print(f"skipping symlink whose target is outside the archive:{path} -> {target}")

    def symlink_target_missing(self, path, missing):
        self._print(f"skipping symlink whose target is missing:{path} -> {missing}")

    def special_file_skipped(self, path):
        self._print(f"skipping special file:{path}")

    def unreadable_directory(self, path, error):
        self._print(f"skipping unreadable directory:{path} ({error})")

    def stream_done(self):
        self._print("tar.gz stream done")


@dataclass
class StreamStats:
    """Counters for one archive operation"""
    start_time: float
    end_time: Optional[float] = None
    files: int = 0
    directories: int = 0
    symlinks: int = 0
    skipped_outside: int = 0
    skipped_missing: int = 0
    skipped_special: int = 0
    unreadable_directories: int = 0
    payload_bytes: int = 0
    compressed_bytes: int = 0
    memory_start: int = 0
    memory_peak: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def entries(self) -> int:
        return self.files + self.directories + self.symlinks

    @property
    def skipped(self) -> int:
        return self.skipped_outside + self.skipped_missing + self.skipped_special

    @property
    def duration(self) -> float:
        if self.end_time:
            return self.end_time - self.start_time
        return time.time() - self.start_time

    @property
    def throughput_mb_per_sec(self) -> float:
        if self.duration > 0:
            return (self.payload_bytes / 1024 / 1024) / self.duration
        return 0.0

    @property
    def compression_ratio(self) -> float:
        if self.payload_bytes > 0:
            return self.compressed_bytes / self.payload_bytes
        return 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'files': self.files,
            'directories': self.directories,
            'symlinks': self.symlinks,
            'skipped': self.skipped,
            'unreadable_directories': self.unreadable_directories,
            'payload_bytes': self.payload_bytes,
            'compressed_bytes': self.compressed_bytes,
            'duration': self.duration,
            'throughput_mb_per_sec': self.throughput_mb_per_sec,
            'memory_peak': self.memory_peak,
            'errors': list(self.errors),
        }


class StreamMetrics(StreamObserver):
    """Collects StreamStats and samples process memory with psutil"""

    def __init__(self, sample_every: int = MEMORY_SAMPLE_EVERY):
        self.sample_every = sample_every
        self._process = psutil.Process()
        rss = self._rss()
        self.stats = StreamStats(start_time=time.time(), memory_start=rss, memory_peak=rss)

    def _rss(self) -> int:
        try:
            return self._process.memory_info().rss
        except psutil.Error as e:
            logger.debug(f"Memory sample failed: {e}")
            return 0

    def _sample_memory(self, force: bool = False) -> None:
        if force or self.stats.entries % self.sample_every == 0:
            self.stats.memory_peak = max(self.stats.memory_peak, self._rss())

    def file_added(self, path, entry):
        self.stats.files += 1
        self._sample_memory()

    def symlink_added(self, path, entry):
        self.stats.symlinks += 1
        self._sample_memory()

    def directory_entered(self, path, entry):
        self.stats.directories += 1
        self._sample_memory()

    def symlink_outside_root(self, path, target):
        self.stats.skipped_outside += 1

    def symlink_target_missing(self, path, missing):
        self.stats.skipped_missing += 1

    def special_file_skipped(self, path):
        self.stats.skipped_special += 1

    def unreadable_directory(self, path, error):
        self.stats.unreadable_directories += 1

    def payload_copied(self, entry: ArchiveEntry, nbytes: int) -> None:
        self.stats.payload_bytes += nbytes

    def stream_done(self):
        self._finish()

    def stream_failed(self, error):
        self.stats.errors.append(f"{type(error).__name__}: {error}")
        self._finish()

    def _finish(self) -> None:
        self.stats.end_time = time.time()
        self._sample_memory(force=True)
        logger.info(
            f"Stream finished: {self.stats.entries} entries, "
            f"{self.stats.skipped} skipped, {self.stats.payload_bytes:,} payload bytes "
            f"in {self.stats.duration:.2f}s ({self.stats.throughput_mb_per_sec:.2f} MB/s)"
        )
