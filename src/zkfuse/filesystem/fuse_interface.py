"""
FUSE interface implementation for the ZooKeeper filesystem.
"""
from contextlib import contextmanager
import logging
from typing import Any, Dict, Iterator, List

from fuse import FUSE, FuseOSError, LoggingMixIn, Operations

from zkfuse.errors import PrimingError, errno_for
from .fs_operations import FSOperations

logger = logging.getLogger(__name__)


class FuseInterface(LoggingMixIn, Operations):
    """
    FUSE interface that translates FUSE operations to our filesystem operations.
    Every error leaves this class as a FuseOSError, which fusepy hands to the
    kernel as a negative errno.
    """
    def __init__(self, fs: FSOperations):
        self.fs = fs

    @contextmanager
    def _boundary(self, op: str, path: str) -> Iterator[None]:
        try:
            yield
        except Exception as e:
            raise FuseOSError(errno_for(e, op, path)) from e

    def init(self, path: str) -> None:
        """Prime the mirror. The mount is aborted if this fails."""
        try:
            self.fs.init()
        except PrimingError:
            logger.critical("Cannot prime the mirror, aborting mount", exc_info=True)
            raise

    def destroy(self, path: str) -> None:
        self.fs.destroy()

    def getattr(self, path: str, fh: Any = None) -> Dict[str, Any]:
        """Get file attributes."""
        with self._boundary("getattr", path):
            return self.fs.getattr(path)

    def readdir(self, path: str, fh: Any) -> List[str]:
        """Read directory entries."""
        with self._boundary("readdir", path):
            return ['.', '..'] + self.fs.readdir(path)

    def mkdir(self, path: str, mode: int) -> None:
        """Create a directory."""
        with self._boundary("mkdir", path):
            self.fs.mkdir(path)

    def rmdir(self, path: str) -> None:
        with self._boundary("rmdir", path):
            self.fs.rmdir(path)

    def create(self, path: str, mode: int, fi: Any = None) -> int:
        """Create a file."""
        with self._boundary("create", path):
            self.fs.create(path)
        return 0

    def unlink(self, path: str) -> None:
        with self._boundary("unlink", path):
            self.fs.unlink(path)

    def read(self, path: str, size: int, offset: int, fh: Any) -> bytes:
        """Read from a file."""
        with self._boundary("read", path):
            return self.fs.read(path, size, offset)

    def write(self, path: str, data: bytes, offset: int, fh: Any) -> int:
        """Write to a file."""
        with self._boundary("write", path):
            return self.fs.write(path, data, offset)

    def truncate(self, path: str, length: int, fh: Any = None) -> None:
        with self._boundary("truncate", path):
            self.fs.truncate(path, length)

    def rename(self, old: str, new: str) -> None:
        with self._boundary("rename", old):
            self.fs.rename(old, new)


def mount(fs: FSOperations, mountpoint: str, **kwargs: Any) -> None:
    """
    Mount the filesystem at the specified mountpoint.

    Blocks until the filesystem is unmounted.

    Args:
        fs: Filesystem operations to serve
        mountpoint: Directory to mount the filesystem at
        **kwargs: Additional arguments to pass to FUSE
    """
    FUSE(
        FuseInterface(fs),
        mountpoint,
        nothreads=False,
        **kwargs
    )
