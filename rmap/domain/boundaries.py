import asyncio
import json
import math
from typing import Any, Callable, Dict, List, Optional

from ..adapters.event_bus import EventBus
from ..adapters.storage import LocalStorage
from ..core.constants import (
    BOUNDARIES_CACHE_KEY, BOUNDARIES_FETCH_TIMEOUT_S, BOUNDARIES_TTL_S, REQ_GET_BOUNDARIES
)
from ..core.models import CacheEntry
from ..utils.log import log_line
from ..utils.time import now_ms

BoundaryGeometry = Dict[str, Any]

def normalize_boundaries(payload: Any) -> Optional[List[BoundaryGeometry]]:
    """A list of geometry objects, or None when the payload is not one."""
    if not isinstance(payload, list):
        return None
    if not all(isinstance(b, dict) for b in payload):
        return None
    return list(payload)

class BoundaryCache:
    """
    TTL cache for the territory polygons: memory first, then the persisted
    record, then one server round trip shared by every concurrent caller.
    """

    def __init__(self, bus: EventBus, storage: LocalStorage,
                 ttl_s: float = BOUNDARIES_TTL_S,
                 fetch_timeout_s: float = BOUNDARIES_FETCH_TIMEOUT_S,
                 clock: Callable[[], int] = now_ms,
                 key: str = BOUNDARIES_CACHE_KEY):
        self.bus = bus
        self.storage = storage
        self.ttl_ms = int(ttl_s * 1000)
        self.fetch_timeout_s = fetch_timeout_s
        self.clock = clock
        self.key = key
        self.memory: Optional[CacheEntry] = None
        self._inflight: Optional[asyncio.Future] = None

    def _load_persisted(self) -> Optional[CacheEntry]:
        raw = self.storage.get_item(self.key)
        if raw is None:
            return None
        try:
            data = json.loads(raw)
            boundaries = normalize_boundaries(data.get("boundaries"))
            ts = data.get("timestamp")
            if boundaries is None or isinstance(ts, bool) or not isinstance(ts, (int, float)):
                raise ValueError("unexpected cache record shape")
            if not math.isfinite(ts):
                raise ValueError(f"non-finite timestamp {ts!r}")
            timestamp = int(ts)
        except (ValueError, AttributeError, OverflowError) as e:
            log_line(f"BOUNDARIES | discarding corrupt cache record | err={e}", "WARN")
            self.storage.remove_item(self.key)
            return None
        return CacheEntry(payload=boundaries, timestamp=timestamp)

    def fresh_entry(self) -> Optional[CacheEntry]:
        now = self.clock()
        if self.memory is not None:
            if self.memory.is_valid(now, self.ttl_ms):
                return self.memory
            self.memory = None
        entry = self._load_persisted()
        if entry is None:
            return None
        if not entry.is_valid(now, self.ttl_ms):
            self.storage.remove_item(self.key)
            return None
        self.memory = entry
        return entry

    async def get(self) -> List[BoundaryGeometry]:
        entry = self.fresh_entry()
        if entry is not None:
            return list(entry.payload)

        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.get_running_loop().create_future()
            log_line("BOUNDARIES | cache miss, requesting from server")
            self.bus.push(REQ_GET_BOUNDARIES, {})
        fut = self._inflight
        try:
            return list(await asyncio.wait_for(asyncio.shield(fut), self.fetch_timeout_s))
        except asyncio.TimeoutError:
            log_line(f"BOUNDARIES | no response within {self.fetch_timeout_s}s, using empty set", "WARN")
            if self._inflight is fut:
                self._inflight = None
            return []

    def write_through(self, payload: Any) -> bool:
        """Store boundaries from the server in memory and on disk; wakes any waiting get()."""
        boundaries = normalize_boundaries(payload)
        if boundaries is None:
            log_line(f"BOUNDARIES | ignoring malformed payload type={type(payload).__name__}", "WARN")
            return False
        entry = CacheEntry(payload=boundaries, timestamp=self.clock())
        self.memory = entry
        record = json.dumps({"boundaries": boundaries, "timestamp": entry.timestamp})
        try:
            self.storage.set_item(self.key, record)
        except OSError as e:
            log_line(f"BOUNDARIES | persist failed | err={e!r}", "WARN")
        if self._inflight is not None and not self._inflight.done():
            self._inflight.set_result(boundaries)
        log_line(f"BOUNDARIES | cached {len(boundaries)} geometries")
        return True

    def clear_memory(self) -> None:
        self.memory = None
