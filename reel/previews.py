"""
The previews module serves timeline preview strips (the frames shown while scrubbing).

Strips are expensive to render and are read in bursts, so they are held in a bounded in-memory LRU
cache in front of the store. Reads go cache, then store, then the probe; anything found further down
is written back up.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

from cachetools import LRUCache

from reel.config import Config
from reel.probe import Prober
from reel.records import LibraryRecord
from reel.store import Store

if TYPE_CHECKING:
    from reel.player import Transition

logger = logging.getLogger(__name__)


class PreviewCache:
    def __init__(self, capacity: int = 150) -> None:
        self._cache: LRUCache[str, list[bytes]] = LRUCache(maxsize=capacity)

    @property
    def capacity(self) -> int:
        return int(self._cache.maxsize)

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, record_id: str) -> bool:
        # Membership checks do not count as an access.
        return record_id in self._cache

    def get(self, record_id: str) -> list[bytes] | None:
        return self._cache.get(record_id)

    def set(self, record_id: str, frames: list[bytes]) -> None:
        self._cache[record_id] = frames

    def delete(self, record_id: str) -> None:
        self._cache.pop(record_id, None)

    def clear(self) -> None:
        self._cache.clear()


def load_timeline(
    c: Config,
    record: LibraryRecord,
    store: Store,
    cache: PreviewCache,
    probe: Prober,
    resolve: Callable[[LibraryRecord], Path | None],
) -> list[bytes] | None:
    frames = cache.get(record.id)
    if frames is not None:
        return frames

    frames = store.get_timeline(record.id)
    if frames:
        logger.debug(f"Loaded timeline of {record.relative_path} from store")
        cache.set(record.id, frames)
        return frames

    if not record.playable:
        return None
    path = resolve(record)
    if path is None:
        logger.debug(f"Cannot render timeline of {record.relative_path}: file not available")
        return None
    try:
        frames = probe.timeline_frames(path, c.timeline_frame_count)
    except Exception as e:
        logger.warning(f"Probe raised while rendering timeline of {path}: {e}", exc_info=True)
        return None
    if not frames:
        return None
    store.set_timeline(record.id, frames)
    cache.set(record.id, frames)
    logger.debug(f"Rendered and stored timeline of {record.relative_path}")
    return frames


class TimelinePreloader:
    """Player listener that warms the cache as soon as a record starts loading."""

    def __init__(
        self,
        c: Config,
        store: Store,
        cache: PreviewCache,
        probe: Prober,
        resolve: Callable[[LibraryRecord], Path | None],
    ) -> None:
        self.config = c
        self.store = store
        self.cache = cache
        self.probe = probe
        self.resolve = resolve

    def __call__(self, transition: Transition) -> None:
        from reel.player import PlayerState

        if transition.current != PlayerState.LOADING or transition.record_id is None:
            return
        record = self.store.get_record(transition.record_id)
        if record is None:
            return
        load_timeline(self.config, record, self.store, self.cache, self.probe, self.resolve)
