"""
Streaming tar.gz archiver modules.
"""

# Import archiver stages
from .stages.compression import CompressionSink, TarStreamWriter
from .stages.encoding import EntryEncoder
from .stages.traversal import TreeWalker
from .workers.channel import PipeChannel, PipeReader, PipeWriter
from .workers.producer import ProducerState, StreamProducer

__all__ = [
    'CompressionSink',
    'TarStreamWriter',
    'EntryEncoder',
    'TreeWalker',
    'PipeChannel',
    'PipeReader',
    'PipeWriter',
    'ProducerState',
    'StreamProducer',
]
