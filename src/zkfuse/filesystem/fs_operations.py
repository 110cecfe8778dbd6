"""
Implementation of the filesystem operations on top of the ZooKeeper tree.
Reads are answered from the mirror; mutations go straight to the remote client.
"""
from contextlib import contextmanager
from enum import Enum
import logging
import stat
from typing import Callable, Iterator, List, Optional, Tuple

from kazoo.client import KazooClient
from kazoo.exceptions import (
    BadVersionError,
    KazooException,
    NodeExistsError,
    NoNodeError,
    NotEmptyError,
)
from kazoo.handlers.threading import KazooTimeoutError
from kazoo.protocol.states import ZnodeStat

from zkfuse.errors import (
    NodeExists,
    NodeNotEmpty,
    NodeNotFound,
    NotRunning,
    PayloadTooLarge,
    PrimingError,
    RemoteUnavailable,
    RenameUnsupported,
    WriteConflict,
)
from zkfuse.mirror.node import Node

logger = logging.getLogger(__name__)

DIRECTORY_MODE = stat.S_IFDIR | 0o777
FILE_MODE = stat.S_IFREG | 0o666
DEFAULT_MAX_PAYLOAD = 1024 * 1024


class LifecycleState(Enum):
    UNINITIALIZED = "uninitialized"
    RUNNING = "running"
    STOPPED = "stopped"


def splice(payload: bytes, data: bytes, offset: int) -> bytes:
    """Overwrite payload at offset with data, zero-filling any gap past the end."""
    if offset > len(payload):
        payload = payload + bytes(offset - len(payload))
    return payload[:offset] + data + payload[offset + len(data):]


def resize(payload: bytes, length: int) -> bytes:
    """Cut payload to length, or zero-extend it."""
    if length <= len(payload):
        return payload[:length]
    return payload + bytes(length - len(payload))


class FSOperations:
    """
    Filesystem operations over a ZooKeeper tree.

    The remote client and the mirror are constructed by the caller and handed
    over here; ``init`` acquires them and ``destroy`` releases them.
    """
    client: KazooClient
    state: LifecycleState

    def __init__(
        self,
        client: KazooClient,
        mirror,
        connect_timeout: float = 15.0,
        prime_timeout: Optional[float] = None,
        sync_timeout: float = 2.0,
        max_payload_size: int = DEFAULT_MAX_PAYLOAD,
    ):
        self.client = client
        self.mirror = mirror
        self.connect_timeout = connect_timeout
        self.prime_timeout = prime_timeout
        self.sync_timeout = sync_timeout
        self.max_payload_size = max_payload_size
        self.state = LifecycleState.UNINITIALIZED

    def init(self) -> None:
        """
        Connect to the remote tree and prime the mirror.

        Returns only once the mirror holds a complete snapshot. Calling it
        again while running does nothing.

        Raises:
            PrimingError: if the remote tree is unreachable or the snapshot
                cannot be loaded
        """
        if self.state is LifecycleState.RUNNING:
            return
        if self.state is LifecycleState.STOPPED:
            raise NotRunning(message="filesystem has been destroyed")
        try:
            self.client.start(timeout=self.connect_timeout)
        except (KazooTimeoutError, KazooException) as e:
            raise PrimingError(message=f"cannot connect to remote tree: {e}") from e
        try:
            self.mirror.prime_and_wait(self.prime_timeout)
        except (KazooTimeoutError, KazooException) as e:
            self._release()
            raise PrimingError(message=f"cannot prime mirror: {e}") from e
        except PrimingError:
            self._release()
            raise
        self.state = LifecycleState.RUNNING
        logger.info("Filesystem running")

    def destroy(self) -> None:
        """Close the subscription and the remote client. No calls are accepted afterwards."""
        if self.state is LifecycleState.STOPPED:
            return
        self.state = LifecycleState.STOPPED
        self._release()
        logger.info("Filesystem stopped")

    def _release(self) -> None:
        self.mirror.close()
        self.client.stop()
        self.client.close()

    def getattr(self, path: str) -> dict:
        """
        Get attributes of a node.

        Args:
            path: Path to the node

        Returns:
            Dict of stat fields
        """
        node = self._lookup(path)
        if node.is_directory:
            mode, nlink = DIRECTORY_MODE, 2
        else:
            mode, nlink = FILE_MODE, 1
        return {
            'st_mode': mode,
            'st_nlink': nlink,
            'st_size': node.size,
            'st_ctime': node.ctime,
            'st_mtime': node.mtime,
            'st_atime': node.mtime,
        }

    def readdir(self, path: str) -> List[str]:
        """List the child names of a node."""
        self._ensure_running()
        with self._remote("readdir", path):
            names = self.mirror.list_children(path)
        if names is None:
            raise NodeNotFound(path)
        return names

    def mkdir(self, path: str) -> None:
        self._create_node(path)

    def create(self, path: str) -> None:
        self._create_node(path)

    def _create_node(self, path: str) -> None:
        self._ensure_running()
        with self._remote("create", path):
            exists = self.mirror.lookup(path) is not None
        if exists:
            raise NodeExists(path)
        with self._remote("create", path):
            self.client.retry(self.client.create, path, b"")
        self._await_mirror(path, lambda node: node is not None)

    def read(self, path: str, size: int, offset: int) -> bytes:
        """
        Read from a node's payload.

        The whole payload comes from the mirror; no partial fetch is made.

        Args:
            path: Path to the node
            size: Number of bytes to read
            offset: Offset from which to read

        Returns:
            Up to size bytes starting at offset
        """
        node = self._lookup(path)
        return node.payload[offset:offset + size]

    def write(self, path: str, data: bytes, offset: int) -> int:
        """
        Write data into a node's payload at offset.

        Fetches the current payload from the remote tree, splices data in and
        stores the result with a version check against the fetched copy.

        Returns:
            Number of bytes written
        """
        self._read_modify_write(
            "write", path,
            lambda payload: max(len(payload), offset + len(data)),
            lambda payload: splice(payload, data, offset),
        )
        return len(data)

    def truncate(self, path: str, length: int) -> None:
        self._read_modify_write("truncate", path, lambda payload: length, lambda payload: resize(payload, length))

    def _read_modify_write(
        self,
        op: str,
        path: str,
        size_after: Callable[[bytes], int],
        mutate: Callable[[bytes], bytes],
    ) -> None:
        self._ensure_running()
        with self._remote(op, path):
            payload, current = self._fetch(path)
            # Checked before mutate so a huge offset or length is never allocated.
            length = size_after(payload)
            if length > self.max_payload_size:
                raise PayloadTooLarge(path, f"{path}: {length} bytes exceeds {self.max_payload_size}")
            updated = mutate(payload)
            written = self.client.retry(self.client.set, path, updated, version=current.version)
        self._await_mirror(path, lambda node: node is not None and node.version >= written.version)

    def _fetch(self, path: str) -> Tuple[bytes, ZnodeStat]:
        payload, current = self.client.retry(self.client.get, path)
        return payload or b"", current

    def unlink(self, path: str) -> None:
        self._delete_node(path)

    def rmdir(self, path: str) -> None:
        self._delete_node(path)

    def _delete_node(self, path: str) -> None:
        self._ensure_running()
        with self._remote("delete", path):
            self.client.retry(self.client.delete, path)
        self._await_mirror(path, lambda node: node is None)

    def rename(self, old_path: str, new_path: str) -> None:
        # The tree has no atomic move that keeps children and versions.
        raise RenameUnsupported(old_path, f"rename {old_path} -> {new_path} is not supported")

    def _lookup(self, path: str) -> Node:
        self._ensure_running()
        with self._remote("lookup", path):
            node = self.mirror.lookup(path)
        if node is None:
            raise NodeNotFound(path)
        return node

    def _ensure_running(self) -> None:
        if self.state is not LifecycleState.RUNNING:
            raise NotRunning(message=f"filesystem is {self.state.value}")

    def _await_mirror(self, path: str, predicate) -> None:
        if self.sync_timeout <= 0:
            return
        if not self.mirror.wait_until(path, predicate, self.sync_timeout):
            logger.info("Mirror did not observe change to %s within %ss", path, self.sync_timeout)

    @contextmanager
    def _remote(self, op: str, path: str) -> Iterator[None]:
        """Translate kazoo exceptions raised inside the block into filesystem errors."""
        try:
            yield
        except NoNodeError as e:
            raise NodeNotFound(path) from e
        except NodeExistsError as e:
            raise NodeExists(path) from e
        except BadVersionError as e:
            raise WriteConflict(path, f"{op} {path}: node changed concurrently") from e
        except NotEmptyError as e:
            raise NodeNotEmpty(path) from e
        except (KazooTimeoutError, KazooException) as e:
            raise RemoteUnavailable(path, f"{op} {path}: {type(e).__name__} {e}") from e
