from dataclasses import dataclass, replace
from typing import Optional

from kazoo.protocol.states import ZnodeStat


@dataclass(frozen=True)
class Node:
    """A znode as the filesystem sees it."""
    path: str
    payload: bytes = b""
    child_count: int = 0
    created_at: int = 0  # milliseconds
    modified_at: int = 0  # milliseconds
    version: int = 0

    @classmethod
    def from_stat(cls, path: str, data: Optional[bytes], stat: ZnodeStat, child_count: int = 0) -> "Node":
        return cls(
            path=path,
            payload=data or b"",
            child_count=child_count,
            created_at=stat.ctime,
            modified_at=stat.mtime,
            version=stat.version,
        )

    def with_child_count(self, child_count: int) -> "Node":
        if child_count == self.child_count:
            return self
        return replace(self, child_count=child_count)

    # A node with both children and a payload is shown as a directory;
    # the payload stays unreachable through the mount.
    @property
    def is_directory(self) -> bool:
        return self.child_count > 0

    @property
    def size(self) -> int:
        return len(self.payload)

    @property
    def ctime(self) -> int:
        return self.created_at // 1000

    @property
    def mtime(self) -> int:
        return self.modified_at // 1000
