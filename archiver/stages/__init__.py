"""
Archiver stages: node encoding, tree traversal and the compression sink.
"""

from .compression import CompressionSink, TarStreamWriter
from .encoding import EntryEncoder
from .traversal import TreeWalker

__all__ = [
    'CompressionSink',
    'TarStreamWriter',
    'EntryEncoder',
    'TreeWalker',
]
