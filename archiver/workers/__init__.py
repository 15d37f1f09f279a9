"""
Archiver workers: the bounded pipe and the producer that feeds it.
"""

from .channel import PipeChannel, PipeReader, PipeWriter
from .producer import ProducerState, StreamProducer

__all__ = [
    'PipeChannel',
    'PipeReader',
    'PipeWriter',
    'ProducerState',
    'StreamProducer',
]
