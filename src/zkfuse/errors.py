"""
Error taxonomy for the ZooKeeper filesystem.
Every error the adapter raises carries the errno the FUSE boundary reports.
"""
import errno
import logging
from typing import Optional

logger = logging.getLogger(__name__)


class ZkFuseError(Exception):
    """Base class for all errors raised by the filesystem adapter."""
    errno: int = errno.EIO

    def __init__(self, path: Optional[str] = None, message: Optional[str] = None):
        self.path = path
        super().__init__(message or self.describe(path))

    @classmethod
    def describe(cls, path: Optional[str]) -> str:
        return f"{cls.__name__}: {path}" if path else cls.__name__


class NodeNotFound(ZkFuseError):
    errno = errno.ENOENT


class NodeExists(ZkFuseError):
    errno = errno.EEXIST


class RenameUnsupported(ZkFuseError):
    errno = errno.ENOTSUP


class RemoteUnavailable(ZkFuseError):
    """
    The remote tree could not complete the call (connection loss, session
    expiry, exhausted retries). Reported to the kernel like a missing node.
    """
    errno = errno.ENOENT


class WriteConflict(RemoteUnavailable):
    """The node changed between the read and the write of a read-modify-write cycle."""
    errno = errno.EAGAIN


class NodeNotEmpty(ZkFuseError):
    errno = errno.ENOTEMPTY


class PayloadTooLarge(ZkFuseError):
    errno = errno.EFBIG


class NotRunning(ZkFuseError):
    errno = errno.EIO


class PrimingError(ZkFuseError):
    """The mirror could not load the initial snapshot. Fatal for the mount."""


class ConfigurationError(ZkFuseError):
    """Invalid startup configuration. Fatal for the process."""


def errno_for(exc: Exception, op: str, path: str) -> int:
    """
    Pick the errno reported to the kernel for a failed call, and log it.

    Remote outages share ENOENT with missing nodes but are logged at WARNING
    so they stay visible; anything outside the taxonomy becomes EIO.
    """
    if isinstance(exc, RemoteUnavailable):
        logger.warning("Remote tree unavailable during %s %s: %s", op, path, exc)
        return exc.errno
    if isinstance(exc, NodeNotFound):
        logger.debug("%s %s: no such node", op, path)
        return exc.errno
    if isinstance(exc, ZkFuseError):
        logger.debug("%s %s failed: %s", op, path, exc)
        return exc.errno
    logger.error("Unexpected failure in %s %s", op, path, exc_info=exc)
    return errno.EIO
