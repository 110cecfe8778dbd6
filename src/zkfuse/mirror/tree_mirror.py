"""
Local mirror of the remote ZooKeeper tree.
The mirror is fed by a kazoo TreeCache subscription and serves lookups
without a network round trip.
"""
import logging
import posixpath
import threading
from typing import Callable, Dict, List, Optional

from kazoo.client import KazooClient
from kazoo.exceptions import NoNodeError
from kazoo.recipe.cache import NodeData, TreeCache, TreeEvent
from sortedcontainers import SortedSet

from zkfuse.errors import PrimingError
from zkfuse.mirror.node import Node

logger = logging.getLogger(__name__)

NodePredicate = Callable[[Optional[Node]], bool]

CONNECTION_EVENTS = {
    TreeEvent.CONNECTION_SUSPENDED: "suspended",
    TreeEvent.CONNECTION_RECONNECTED: "reconnected",
    TreeEvent.CONNECTION_LOST: "lost",
}


def parent_of(path: str) -> str:
    return posixpath.dirname(path) or "/"


class TreeMirror:
    """
    Watch-driven, eventually consistent copy of every node under ``root``.

    Events are applied in delivery order by the TreeCache background thread;
    lookups come from any number of FUSE worker threads. Both sides go
    through one condition so readers never see a half-applied event.
    """
    client: KazooClient
    root: str
    nodes: Dict[str, Node]
    children: Dict[str, SortedSet]

    def __init__(self, client: KazooClient, root: str = "/", cache_factory=TreeCache):
        self.client = client
        self.root = root
        self.cache_factory = cache_factory
        self.cache = None
        self.nodes = {}
        self.children = {}
        self.primed = False
        self.fault: Optional[Exception] = None
        self.changed = threading.Condition()

    def prime_and_wait(self, timeout: Optional[float] = None) -> None:
        """
        Subscribe to the tree and block until the initial snapshot is complete.

        Args:
            timeout: Seconds to wait for the snapshot, or None to wait for as
                long as it takes

        Raises:
            PrimingError: if the subscription faults or the timeout expires
                before the snapshot is complete
        """
        self.cache = self.cache_factory(self.client, self.root)
        self.cache.listen(self.on_event)
        self.cache.listen_fault(self.on_fault)
        logger.info("Priming mirror of %s", self.root)
        self.cache.start()
        with self.changed:
            ready = self.changed.wait_for(lambda: self.primed or self.fault is not None, timeout)
            fault = self.fault
        if fault is not None and not self.primed:
            self.close()
            raise PrimingError(self.root, f"mirror subscription failed: {fault}") from fault
        if not ready:
            self.close()
            raise PrimingError(self.root, f"mirror not primed after {timeout}s")
        logger.info("Mirror primed with %d nodes", len(self.nodes))

    def close(self) -> None:
        if self.cache is not None:
            self.cache.close()
            self.cache = None

    def lookup(self, path: str) -> Optional[Node]:
        with self.changed:
            return self._lookup(path)

    def list_children(self, path: str) -> Optional[List[str]]:
        with self.changed:
            if path not in self.nodes:
                return None
            return list(self.children.get(path, ()))

    def wait_until(self, path: str, predicate: NodePredicate, timeout: float) -> bool:
        """Block until predicate(lookup(path)) holds. Returns False on timeout."""
        with self.changed:
            return self.changed.wait_for(lambda: predicate(self._lookup(path)), timeout)

    def _lookup(self, path: str) -> Optional[Node]:
        node = self.nodes.get(path)
        if node is None:
            return None
        return node.with_child_count(len(self.children.get(path, ())))

    def on_event(self, event: TreeEvent) -> None:
        kind = event.event_type
        if kind in CONNECTION_EVENTS:
            logger.warning("Connection to remote tree %s", CONNECTION_EVENTS[kind])
            return
        with self.changed:
            if kind == TreeEvent.INITIALIZED:
                self.primed = True
            elif kind in (TreeEvent.NODE_ADDED, TreeEvent.NODE_UPDATED):
                self._apply_upsert(event.event_data)
            elif kind == TreeEvent.NODE_REMOVED:
                self._apply_remove(event.event_data.path)
            self.changed.notify_all()

    def on_fault(self, exc: Exception) -> None:
        logger.error("Mirror subscription fault: %s", exc)
        with self.changed:
            self.fault = exc
            self.changed.notify_all()

    def _apply_upsert(self, data: NodeData) -> None:
        path = data.path
        self.nodes[path] = Node.from_stat(path, data.data, data.stat)
        self.children.setdefault(path, SortedSet())
        if path != self.root:
            self.children.setdefault(parent_of(path), SortedSet()).add(posixpath.basename(path))

    def _apply_remove(self, path: str) -> None:
        self.nodes.pop(path, None)
        self.children.pop(path, None)
        if path != self.root:
            siblings = self.children.get(parent_of(path))
            if siblings is not None:
                siblings.discard(posixpath.basename(path))


class PassthroughMirror:
    """Mirror interface without a cache: every lookup asks the remote tree."""
    client: KazooClient

    def __init__(self, client: KazooClient, root: str = "/"):
        self.client = client
        self.root = root

    def prime_and_wait(self, timeout: Optional[float] = None) -> None:
        if self.client.exists(self.root) is None:
            raise PrimingError(self.root, "root node does not exist")

    def close(self) -> None:
        pass

    def lookup(self, path: str) -> Optional[Node]:
        try:
            data, stat = self.client.get(path)
        except NoNodeError:
            return None
        return Node.from_stat(path, data, stat, stat.numChildren)

    def list_children(self, path: str) -> Optional[List[str]]:
        try:
            return sorted(self.client.get_children(path))
        except NoNodeError:
            return None

    def wait_until(self, path: str, predicate: NodePredicate, timeout: float) -> bool:
        return predicate(self.lookup(path))
