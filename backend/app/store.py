from __future__ import annotations

import copy
import datetime
import threading
from typing import Any

from app.schemas.snapshot import Node, Snapshot


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


class SnapshotStore:
    """Holds the published snapshot.

    Every read and write goes through one lock, held only for the copy or the
    assignment. Each fetcher owns its fields and replaces them wholesale.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshot = Snapshot()

    @property
    def lock(self) -> threading.Lock:
        return self._lock

    def read(self) -> Snapshot:
        with self._lock:
            return self._snapshot.model_copy(deep=True)

    def replace_nodes(
        self, nodes: list[Node], last_updated: datetime.datetime | None = None
    ) -> None:
        published = [node.model_copy(deep=True) for node in nodes]
        stamp = last_updated or _utcnow()
        with self._lock:
            self._snapshot.nodes = published
            self._snapshot.last_updated = stamp

    def replace_market_data(self, market_data: dict[str, Any]) -> None:
        published = copy.deepcopy(market_data)
        stamp = _utcnow()
        with self._lock:
            self._snapshot.market_data = published
            self._snapshot.market_data_updated = stamp

    def replace_local_stats(self, local_stats: dict[str, Any]) -> None:
        published = copy.deepcopy(local_stats)
        stamp = _utcnow()
        with self._lock:
            self._snapshot.local_stats = published
            self._snapshot.local_stats_updated = stamp
