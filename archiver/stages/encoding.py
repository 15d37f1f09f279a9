"""
Entry Encoding
==============

Turns one filesystem node into an archive entry, applying the symlink
containment policy.
"""

import logging
import os
import stat
from typing import BinaryIO, Optional

from base_classes import ArchiveEntry, EntryKind, StreamObserver
from security_validation import SymlinkStatus, SymlinkValidator

logger = logging.getLogger(__name__)


class EntryEncoder:
    """Classifies nodes with lstat and builds their ArchiveEntry.

    Returns None for nodes that are skipped: symlinks whose target is missing
    or outside the root, and special files (FIFOs, sockets, devices).
    """

    def __init__(self, validator: SymlinkValidator,
                 observer: Optional[StreamObserver] = None):
        self.validator = validator
        self.observer = observer or StreamObserver()

    def encode(self, path: str, name: str) -> Optional[ArchiveEntry]:
        """
        Encode a single node.

        Args:
            path: Filesystem path of the node
            name: Root-relative archive name for the node

        Returns:
            The entry to write, or None when the node is skipped
        """
        st = os.lstat(path)
        mode = st.st_mode

        if stat.S_ISREG(mode):
            entry = self._entry(name, EntryKind.FILE, st,
                                size=st.st_size, source_path=path)
            self.observer.file_added(path, entry)
            return entry

        if stat.S_ISLNK(mode):
            return self._encode_symlink(path, name, st)

        if stat.S_ISDIR(mode):
            entry = self._entry(name, EntryKind.DIRECTORY, st)
            self.observer.directory_entered(path, entry)
            return entry

        logger.debug(f"Skipping special file: {path}")
        self.observer.special_file_skipped(path)
        return None

    def _encode_symlink(self, path: str, name: str,
                        st: os.stat_result) -> Optional[ArchiveEntry]:
        check = self.validator.check(path)

        if check.status is SymlinkStatus.MISSING:
            logger.debug(f"Symlink target missing: {path} -> {check.missing}")
            self.observer.symlink_target_missing(path, check.missing)
            return None

        if check.status is SymlinkStatus.OUTSIDE:
            logger.info(f"Symlink escapes archive root, skipping: {path} -> {check.target}")
            self.observer.symlink_outside_root(path, check.target)
            return None

        entry = self._entry(name, EntryKind.SYMLINK, st, linkname=check.target)
        self.observer.symlink_added(path, entry)
        return entry

    @staticmethod
    def _entry(name: str, kind: EntryKind, st: os.stat_result,
               **fields) -> ArchiveEntry:
        return ArchiveEntry(
            name=name,
            kind=kind,
            mode=stat.S_IMODE(st.st_mode),
            mtime=st.st_mtime,
            uid=st.st_uid,
            gid=st.st_gid,
            **fields
        )

    @staticmethod
    def open_payload(entry: ArchiveEntry) -> BinaryIO:
        """Open the byte source of a file entry"""
        if not entry.is_file or entry.source_path is None:
            raise ValueError(f"Entry has no payload: {entry.name}")
        return open(entry.source_path, 'rb')
