"""
Error Taxonomy for the tar.gz Streaming Archiver
================================================

Typed errors surfaced to the caller. Per-node conditions (missing or escaping
symlink targets) are never errors; they are reported to observers and skipped.
"""

import time
import traceback
from typing import Any, Dict, List, Optional


class ArchiveStreamError(Exception):
    """Base class for archiver errors"""

    def __init__(self, message: str, cause: Optional[BaseException] = None,
                 error_code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        """
        Initialize an archiver error.

        Args:
            message: Error description
            cause: Original exception that caused this error
            error_code: Specific error code for categorization
            details: Additional error context
        """
        super().__init__(message)
        self.cause = cause
        self.error_code = error_code
        self.details = details or {}
        self.timestamp = time.time()
        self.traceback = (
            ''.join(traceback.format_exception(type(cause), cause, cause.__traceback__))
            if cause else None
        )

    def __str__(self) -> str:
        base_msg = super().__str__()
        if self.error_code:
            base_msg = f"[{self.error_code}] {base_msg}"
        if self.cause:
            return f"{base_msg} (caused by {type(self.cause).__name__}: {self.cause})"
        return base_msg

    def __repr__(self) -> str:
        return (f"{type(self).__name__}(message={super().__str__()!r}, "
                f"cause={self.cause!r}, error_code={self.error_code!r}, "
                f"details={self.details!r})")

    def log_context(self) -> Dict[str, Any]:
        """Get error context for structured logging"""
        return {
            'error_type': type(self).__name__,
            'error_code': self.error_code,
            'message': str(self),
            'timestamp': self.timestamp,
            'details': self.details,
            'cause': str(self.cause) if self.cause else None
        }


class StreamSetupError(ArchiveStreamError):
    """Raised when the channel or compressor chain cannot be allocated"""

    def __init__(self, message: str, cause: Optional[BaseException] = None, **kwargs):
        kwargs.setdefault('error_code', 'SETUP')
        super().__init__(message, cause, **kwargs)


class StreamingError(ArchiveStreamError):
    """Raised when traversal or writing fails part way through the archive"""

    def __init__(self, message: str, cause: Optional[BaseException] = None, **kwargs):
        kwargs.setdefault('error_code', 'STREAMING')
        super().__init__(message, cause, **kwargs)


class TraversalError(ArchiveStreamError):
    """Raised for an unreadable directory when skipping is disabled"""

    def __init__(self, path: str, cause: Optional[BaseException] = None):
        super().__init__(f"Cannot list directory: {path}", cause,
                         error_code='UNREADABLE_DIR', details={'path': path})
        self.path = path


class ArchiveWriteError(ArchiveStreamError):
    """Raised when the tar entry contract is violated"""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault('error_code', 'TAR_WRITE')
        super().__init__(message, **kwargs)


class FinalizationError(ArchiveStreamError):
    """Raised when one or more close steps failed.

    Every step is still attempted; ``cause`` is the first failure and
    ``errors`` holds all of them as (step name, exception) pairs.
    """

    def __init__(self, errors: List[tuple]):
        step, first = errors[0]
        super().__init__(f"Finalization failed at step '{step}'", first,
                         error_code='FINALIZE',
                         details={'failed_steps': [name for name, _ in errors]})
        self.errors = errors


class ProducerStateError(ArchiveStreamError):
    """Raised when a producer operation is called in the wrong state"""

    def __init__(self, operation: str, state: Any):
        super().__init__(f"Cannot {operation} while producer is {state.value}",
                         error_code='STATE', details={'operation': operation,
                                                      'state': state.value})


class ChannelClosedError(BrokenPipeError):
    """Raised on write to a channel whose writer or reader end is closed"""


class ChannelTimeoutError(TimeoutError):
    """Raised when a channel write stays blocked past its timeout"""


class StreamAbortedError(ArchiveStreamError):
    """Raised on the read end after the producer failed.

    Bytes written before the failure are still delivered first, so the
    consumer can tell a truncated archive from a complete one.
    """

    def __init__(self, cause: Optional[BaseException] = None):
        super().__init__("Archive stream was aborted by the producer", cause,
                         error_code='ABORTED')
