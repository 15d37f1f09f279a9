"""
Symlink Containment Validation
==============================

Decides whether a symbolic link may be stored in the archive. A link is only
archived when its canonical target lies inside the canonical archive root, so
an archive never carries a link that escapes the tree it was built from.
"""

import errno
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)

# Resolution failures that mean "the target does not exist"
_MISSING_ERRNOS = {errno.ENOENT, errno.ENOTDIR, errno.ELOOP}


class SymlinkStatus(Enum):
    """Outcome of a containment check"""
    INSIDE = "inside"
    OUTSIDE = "outside"
    MISSING = "missing"


@dataclass(frozen=True)
class SymlinkCheck:
    """Result of validating one symbolic link

    Attributes:
        status: Containment outcome
        target: Root-relative link target when INSIDE, canonical target when OUTSIDE
        missing: Path that could not be resolved when MISSING
    """
    status: SymlinkStatus
    target: Optional[str] = None
    missing: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return self.status is SymlinkStatus.INSIDE


class SymlinkValidator:
    """Validates symlink targets against a fixed archive root"""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)
        # Raises when the root itself does not exist
        self.resolved_root = self.root.resolve(strict=True)

    def is_contained(self, path: Path) -> bool:
        """Component-wise prefix check on canonical paths"""
        try:
            path.relative_to(self.resolved_root)
            return True
        except ValueError:
            return False

    def check(self, link_path: Union[str, Path]) -> SymlinkCheck:
        """Resolve a link and classify its target

        Args:
            link_path: Filesystem path of the symbolic link

        Returns:
            SymlinkCheck describing whether the link may be archived

        Raises:
            OSError: when resolution fails for a reason other than a missing target
        """
        link_path = Path(link_path)
        try:
            target = link_path.resolve(strict=True)
        except RuntimeError:
            # Symlink loop on interpreters that do not report ELOOP
            logger.debug(f"Symlink loop while resolving {link_path}")
            return SymlinkCheck(SymlinkStatus.MISSING, missing=str(link_path))
        except OSError as e:
            if e.errno not in _MISSING_ERRNOS:
                raise
            return SymlinkCheck(SymlinkStatus.MISSING,
                                missing=e.filename or str(link_path))

        if not self.is_contained(target):
            return SymlinkCheck(SymlinkStatus.OUTSIDE, target=str(target))

        relative = target.relative_to(self.resolved_root).as_posix()
        if relative in ('', '.'):
            relative = '.'
        return SymlinkCheck(SymlinkStatus.INSIDE, target=relative)
