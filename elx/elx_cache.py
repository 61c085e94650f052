"""
A concurrent cache of parsed expression trees keyed by source text.

Entries hold weak references to their trees. When the runtime reclaims a
tree its reference lands on a notification queue, and every cache operation
drains that queue first so reclaimed entries never linger. Each lock-striped
segment also keeps a small LRU of strong references so recently used trees
survive while no compiled expression holds them.
"""
import threading
import weakref
from collections import OrderedDict, deque
from typing import Dict, Optional

from elx.elx_context import dbg

DEFAULT_SEGMENTS = 16
DEFAULT_KEEPALIVE = 256


class _NodeRef(weakref.ref):
    def __new__(cls, node, callback, key):
        self = super().__new__(cls, node, callback)
        self.key = key
        return self

    def __init__(self, node, callback, key):
        super().__init__(node, callback)


class _Segment:
    def __init__(self, keepalive: int):
        self.lock = threading.Lock()
        self.entries: Dict[str, _NodeRef] = {}
        self.recent: "OrderedDict[str, object]" = OrderedDict()
        self.keepalive = keepalive

    def touch(self, key, node):
        if self.keepalive <= 0:
            return
        self.recent[key] = node
        self.recent.move_to_end(key)
        while len(self.recent) > self.keepalive:
            self.recent.popitem(last=False)


class ExpressionCache:
    """Maps expression text to parsed trees; see module docstring for eviction."""
    def __init__(self, keepalive: int = DEFAULT_KEEPALIVE, segments: int = DEFAULT_SEGMENTS):
        if segments < 1:
            raise ValueError("segments must be at least 1")
        per_segment = 0 if keepalive <= 0 else max(1, keepalive // segments)
        self._segments = [_Segment(per_segment) for _ in range(segments)]
        self._reclaimed: deque = deque()

    def _segment(self, key: str) -> _Segment:
        return self._segments[hash(key) % len(self._segments)]

    def _on_reclaimed(self, ref):
        self._reclaimed.append(ref)

    def _cleanup(self):
        while True:
            try:
                ref = self._reclaimed.popleft()
            except IndexError:
                return
            seg = self._segment(ref.key)
            with seg.lock:
                if seg.entries.get(ref.key) is ref:
                    del seg.entries[ref.key]
                    dbg("cache prune", ref.key)

    def put(self, key: str, node) -> Optional[object]:
        """Stores ``node`` and returns the previous live tree, if any."""
        self._cleanup()
        seg = self._segment(key)
        with seg.lock:
            prev = seg.entries.get(key)
            seg.entries[key] = _NodeRef(node, self._on_reclaimed, key)
            seg.touch(key, node)
        return prev() if prev is not None else None

    def put_if_absent(self, key: str, node) -> Optional[object]:
        """Stores ``node`` unless a live tree is cached; returns that live tree or None."""
        self._cleanup()
        seg = self._segment(key)
        with seg.lock:
            prev = seg.entries.get(key)
            if prev is not None:
                live = prev()
                if live is not None:
                    seg.touch(key, live)
                    return live
            seg.entries[key] = _NodeRef(node, self._on_reclaimed, key)
            seg.touch(key, node)
        return None

    def get(self, key: str) -> Optional[object]:
        self._cleanup()
        seg = self._segment(key)
        with seg.lock:
            ref = seg.entries.get(key)
            if ref is None:
                return None
            node = ref()
            if node is None:
                del seg.entries[key]
                return None
            seg.touch(key, node)
            return node

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        self._cleanup()
        total = 0
        for seg in self._segments:
            with seg.lock:
                total += sum(1 for ref in seg.entries.values() if ref() is not None)
        return total

    def clear(self):
        for seg in self._segments:
            with seg.lock:
                seg.entries.clear()
                seg.recent.clear()
        self._reclaimed.clear()
