"""
Base Classes for the tar.gz Streaming Archiver
==============================================

Contains core data structures and the observer interface used throughout the
archiver.
"""

import tarfile
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class EntryKind(Enum):
    """Kinds of filesystem nodes that end up in the archive"""
    FILE = "file"
    DIRECTORY = "directory"
    SYMLINK = "symlink"


_TAR_TYPES = {
    EntryKind.FILE: tarfile.REGTYPE,
    EntryKind.DIRECTORY: tarfile.DIRTYPE,
    EntryKind.SYMLINK: tarfile.SYMTYPE,
}


@dataclass(frozen=True)
class ArchiveEntry:
    """One node being written to the archive"""
    name: str  # Root-relative, '/' separated
    kind: EntryKind
    size: int = 0  # Files only
    linkname: str = ""  # Symlinks only
    mode: int = 0o644
    mtime: float = 0.0
    uid: int = 0
    gid: int = 0

    # Filesystem path the payload is copied from (files only)
    source_path: Optional[str] = None

    @property
    def is_file(self) -> bool:
        return self.kind is EntryKind.FILE

    def to_tarinfo(self) -> tarfile.TarInfo:
        """Build the tar header description for this entry"""
        info = tarfile.TarInfo(name=self.name)
        info.type = _TAR_TYPES[self.kind]
        info.size = self.size if self.is_file else 0
        info.linkname = self.linkname
        info.mode = self.mode
        info.mtime = int(self.mtime)
        info.uid = self.uid
        info.gid = self.gid
        return info


class StreamObserver:
    """Receives progress notifications from the producer.

    Every hook is a no-op so implementations only override what they need.
    Hooks are called on the producer thread.
    """

    def file_added(self, path: str, entry: ArchiveEntry) -> None:
        pass

    def symlink_added(self, path: str, entry: ArchiveEntry) -> None:
        pass

    def directory_entered(self, path: str, entry: ArchiveEntry) -> None:
        pass

    def symlink_outside_root(self, path: str, target: str) -> None:
        pass

    def symlink_target_missing(self, path: str, missing: str) -> None:
        pass

    def special_file_skipped(self, path: str) -> None:
        pass

    def unreadable_directory(self, path: str, error: OSError) -> None:
        pass

    def payload_copied(self, entry: ArchiveEntry, nbytes: int) -> None:
        pass

    def stream_done(self) -> None:
        pass

    def stream_failed(self, error: BaseException) -> None:
        pass
