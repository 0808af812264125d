"""フィンガープリントをキーとする容量制限付きキャッシュ。"""
from __future__ import annotations

import logging
from collections import OrderedDict
from threading import Lock
from typing import Any, Generic, Iterable, TypeVar

from analysis.fingerprint import fingerprint

logger = logging.getLogger(__name__)

V = TypeVar("V")


class BoundedCache(Generic[V]):
    """挿入順（FIFO）で追い出すキャッシュ。

    参照しても順序は更新しない（LRU ではない）。ヒット/ミスのカウンタを含め、
    すべての状態変更は1つのロックで直列化する。
    """

    def __init__(self, capacity: int = 1000) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self._data: OrderedDict[str, V] = OrderedDict()
        self._lock = Lock()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def get(self, sequence: Iterable[float]) -> V | None:
        key = fingerprint(sequence)
        with self._lock:
            if key in self._data:
                self.hits += 1
                return self._data[key]
            self.misses += 1
            return None

    def set(self, sequence: Iterable[float], value: V) -> None:
        key = fingerprint(sequence)
        with self._lock:
            # 上書き時は挿入位置を維持する
            self._data[key] = value
            while len(self._data) > self.capacity:
                evicted, _ = self._data.popitem(last=False)
                self.evictions += 1
                logger.debug("Evicted cache entry %s", evicted[:12])

    def clear(self) -> None:
        with self._lock:
            self._data.clear()
            self.hits = self.misses = self.evictions = 0

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            total = self.hits + self.misses
            return {
                "hits": self.hits,
                "misses": self.misses,
                "hitRate": self.hits / total if total > 0 else 0.0,
                "size": len(self._data),
                "capacity": self.capacity,
                "evictions": self.evictions,
            }

    def __contains__(self, sequence: Iterable[float]) -> bool:
        key = fingerprint(sequence)
        with self._lock:
            return key in self._data

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)
