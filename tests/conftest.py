import posixpath
import queue
import threading
import time

import pytest
from kazoo.exceptions import BadVersionError, NodeExistsError, NoNodeError, NotEmptyError
from kazoo.handlers.threading import KazooTimeoutError
from kazoo.protocol.states import ZnodeStat
from kazoo.recipe.cache import NodeData, TreeEvent

from zkfuse.filesystem import FSOperations
from zkfuse.mirror import TreeMirror

EPOCH_MS = 1_700_000_000_500


class FakeZnode:
    def __init__(self, data: bytes, now: int, zxid: int):
        self.data = data
        self.ctime = now
        self.mtime = now
        self.czxid = zxid
        self.mzxid = zxid
        self.version = 0


class FakeZkClient:
    """In-memory stand-in for KazooClient that feeds attached tree caches."""

    def __init__(self):
        self.lock = threading.RLock()
        self.zxid = 1
        self.clock = EPOCH_MS
        self.nodes = {"/": FakeZnode(b"", self.clock, self.zxid)}
        self.caches = []
        self.reachable = True
        self.prime_delay = 0.0
        self.hold_priming = False
        self.prime_fault = None
        self.started = False
        self.closed = False

    def start(self, timeout=15):
        if not self.reachable:
            raise KazooTimeoutError("Connection time-out")
        self.started = True

    def stop(self):
        self.started = False

    def close(self):
        self.closed = True

    def retry(self, func, *args, **kwargs):
        return func(*args, **kwargs)

    def _tick(self):
        self.zxid += 1
        self.clock += 1000
        return self.zxid, self.clock

    def _children(self, path):
        return [posixpath.basename(p) for p in self.nodes if p != "/" and posixpath.dirname(p) == path]

    def _stat(self, path):
        node = self.nodes[path]
        return ZnodeStat(
            node.czxid, node.mzxid, node.ctime, node.mtime, node.version,
            0, 0, 0, len(node.data), len(self._children(path)), node.mzxid,
        )

    def _publish(self, kind, path):
        if kind == TreeEvent.NODE_REMOVED:
            data = NodeData.make(path, None, None)
        else:
            data = NodeData.make(path, self.nodes[path].data, self._stat(path))
        for cache in list(self.caches):
            cache.publish(TreeEvent.make(kind, data))

    def exists(self, path):
        with self.lock:
            return self._stat(path) if path in self.nodes else None

    def get(self, path):
        with self.lock:
            if path not in self.nodes:
                raise NoNodeError()
            return self.nodes[path].data, self._stat(path)

    def get_children(self, path):
        with self.lock:
            if path not in self.nodes:
                raise NoNodeError()
            return self._children(path)

    def create(self, path, value=b""):
        with self.lock:
            if path in self.nodes:
                raise NodeExistsError()
            if posixpath.dirname(path) not in self.nodes:
                raise NoNodeError()
            zxid, now = self._tick()
            self.nodes[path] = FakeZnode(value, now, zxid)
            self._publish(TreeEvent.NODE_ADDED, path)
            return path

    def set(self, path, value, version=-1):
        with self.lock:
            if path not in self.nodes:
                raise NoNodeError()
            node = self.nodes[path]
            if version != -1 and version != node.version:
                raise BadVersionError()
            zxid, now = self._tick()
            node.data = value
            node.mtime = now
            node.mzxid = zxid
            node.version += 1
            self._publish(TreeEvent.NODE_UPDATED, path)
            return self._stat(path)

    def delete(self, path, version=-1, recursive=False):
        with self.lock:
            if path not in self.nodes:
                raise NoNodeError()
            if self._children(path):
                raise NotEmptyError()
            del self.nodes[path]
            self._publish(TreeEvent.NODE_REMOVED, path)

    def seed(self, path, data=b""):
        """Create path and any missing parents."""
        parent = posixpath.dirname(path)
        if parent not in self.nodes:
            self.seed(parent)
        if path in self.nodes:
            self.set(path, data)
        else:
            self.create(path, data)


class FakeTreeCache:
    """Replays the fake client's tree, then streams its changes on one thread."""

    def __init__(self, client, path):
        self.client = client
        self.path = path
        self.listeners = []
        self.fault_listeners = []
        self.events = queue.Queue()
        self.thread = None
        self.initialized_sent = False

    def listen(self, listener):
        self.listeners.append(listener)

    def listen_fault(self, listener):
        self.fault_listeners.append(listener)

    def start(self):
        client = self.client
        with client.lock:
            client.caches.append(self)
            for path in sorted(client.nodes):
                if path == self.path or path.startswith(self.path.rstrip("/") + "/"):
                    data = NodeData.make(path, client.nodes[path].data, client._stat(path))
                    self.events.put(TreeEvent.make(TreeEvent.NODE_ADDED, data))
            if client.prime_fault is not None:
                self.events.put(client.prime_fault)
            elif not client.hold_priming:
                self.events.put(TreeEvent.make(TreeEvent.INITIALIZED, None))
        self.thread = threading.Thread(target=self._deliver, daemon=True)
        self.thread.start()

    def publish(self, event):
        self.events.put(event)

    def _deliver(self):
        while True:
            item = self.events.get()
            if item is None:
                return
            if isinstance(item, Exception):
                for listener in self.fault_listeners:
                    listener(item)
                continue
            if item.event_type == TreeEvent.INITIALIZED:
                time.sleep(self.client.prime_delay)
                self.initialized_sent = True
            for listener in self.listeners:
                listener(item)

    def close(self):
        with self.client.lock:
            if self in self.client.caches:
                self.client.caches.remove(self)
        self.events.put(None)
        if self.thread is not None:
            self.thread.join(timeout=5)


@pytest.fixture
def zk():
    return FakeZkClient()


@pytest.fixture
def make_fs(zk):
    created = []

    def factory(mirror=None, **kwargs):
        if mirror is None:
            mirror = TreeMirror(zk, cache_factory=FakeTreeCache)
        fs = FSOperations(zk, mirror, **kwargs)
        created.append(fs)
        return fs

    yield factory
    for fs in created:
        fs.destroy()


@pytest.fixture
def fs(make_fs):
    fs = make_fs()
    fs.init()
    return fs
