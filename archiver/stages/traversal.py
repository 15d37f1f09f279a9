"""
Tree Traversal
==============

Pre-order, depth-first enumeration of a directory tree.
"""

import logging
import os
from dataclasses import dataclass
from typing import Iterator, List, Optional

from base_classes import ArchiveEntry, StreamObserver
from stream_configs import UNREADABLE_RAISE, UNREADABLE_SKIP
from stream_errors import TraversalError

from .encoding import EntryEncoder

logger = logging.getLogger(__name__)


@dataclass
class TraversalState:
    """One pending node: where it lives and the archive prefix it gets"""
    path: str
    prefix: str


class TreeWalker:
    """Walks a tree, naming each node and delegating it to the encoder.

    A node's archive name is its parent's name plus '/' plus its own base
    name; the start node is named by its base name alone. Only real
    directories are descended into, never symlinks to directories, so the
    walk always terminates.
    """

    def __init__(self,
                 encoder: EntryEncoder,
                 observer: Optional[StreamObserver] = None,
                 unreadable_directory: str = UNREADABLE_SKIP,
                 sort_children: bool = False):
        self.encoder = encoder
        self.observer = observer or StreamObserver()
        self.unreadable_directory = unreadable_directory
        self.sort_children = sort_children

    def walk(self, start_path: str) -> Iterator[ArchiveEntry]:
        """Yield an entry for every archived node below and including start_path"""
        # Explicit stack instead of recursion keeps deep trees off the call stack
        stack = [TraversalState(path=start_path, prefix='')]

        while stack:
            state = stack.pop()
            name = state.prefix + _base_name(state.path)

            if name:
                try:
                    entry = self.encoder.encode(state.path, name)
                except FileNotFoundError:
                    # Removed between listing and encoding
                    logger.warning(f"Vanished during traversal, skipping: {state.path}")
                    continue
                except PermissionError as e:
                    # Parent listable but not searchable
                    self._handle_unreadable(state.path, e)
                    continue
                if entry is not None:
                    yield entry

            if not _is_real_directory(state.path):
                continue

            child_prefix = name + '/' if name else ''
            children = self._list_children(state.path)
            # Reversed so siblings pop in listing order
            for child in reversed(children):
                stack.append(TraversalState(path=os.path.join(state.path, child),
                                            prefix=child_prefix))

    def _list_children(self, path: str) -> List[str]:
        try:
            children = os.listdir(path)
        except OSError as e:
            self._handle_unreadable(path, e)
            return []

        if self.sort_children:
            children.sort()
        return children

    def _handle_unreadable(self, path: str, error: OSError) -> None:
        """Raise or report a node that could not be read, per policy"""
        if self.unreadable_directory == UNREADABLE_RAISE:
            raise TraversalError(path, error) from error
        logger.warning(f"Cannot read {path}, skipping its contents: {error}")
        self.observer.unreadable_directory(path, error)


def _base_name(path: str) -> str:
    # abspath normalizes '.' and trailing separators without resolving symlinks
    return os.path.basename(os.path.abspath(path))


def _is_real_directory(path: str) -> bool:
    return os.path.isdir(path) and not os.path.islink(path)
