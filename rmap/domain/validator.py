import asyncio
import itertools
from collections import deque
from typing import Any, Deque, Dict, Tuple

from ..adapters.event_bus import EventBus
from ..core.constants import FALLBACK_BOUNDS, REQ_VALIDATE, VALIDATOR_TIMEOUT_S
from ..utils.log import log_line
from .geo import in_fallback_bounds

# Timed-out requests keep their slot this long so a late answer is absorbed
# by them instead of being handed to a newer request.
ABANDONED_SLOT_S = 30.0

class CoordinateValidator:
    """
    Asks the server whether a point is inside the territory. Without an answer
    within timeout_s the local bounding box decides. Advisory only: the server
    validates again on report creation.
    """

    def __init__(self, bus: EventBus, timeout_s: float = VALIDATOR_TIMEOUT_S,
                 bounds=FALLBACK_BOUNDS):
        self.bus = bus
        self.timeout_s = timeout_s
        self.bounds = bounds
        self._ids = itertools.count(1)
        # (request_id, future, abandoned_at or None)
        self._waiting: Deque[Tuple[int, asyncio.Future, Any]] = deque()

    def _prune(self, now: float) -> None:
        self._waiting = deque(
            w for w in self._waiting
            if w[2] is None or now - w[2] < ABANDONED_SLOT_S
        )

    async def validate(self, lat: float, lng: float) -> bool:
        loop = asyncio.get_running_loop()
        self._prune(loop.time())
        request_id = next(self._ids)
        fut = loop.create_future()
        self._waiting.append((request_id, fut, None))
        self.bus.push(REQ_VALIDATE, {"latitude": lat, "longitude": lng, "request_id": request_id})
        try:
            return bool(await asyncio.wait_for(asyncio.shield(fut), self.timeout_s))
        except asyncio.TimeoutError:
            self._abandon(request_id, loop.time())
            decision = in_fallback_bounds(lat, lng, self.bounds)
            log_line(f"VALIDATE | timeout after {self.timeout_s}s, fallback={decision} at {lat:.4f},{lng:.4f}", "WARN")
            return decision

    def _abandon(self, request_id: int, now: float) -> None:
        self._waiting = deque(
            (rid, fut, now if rid == request_id else ts) for rid, fut, ts in self._waiting
        )

    def on_result(self, payload: Dict[str, Any]) -> bool:
        """Resolve the correlated request (by request_id when echoed, else oldest first)."""
        valid = bool(payload.get("valid"))
        rid = payload.get("request_id")
        slot = None
        if rid is not None:
            for w in self._waiting:
                if str(w[0]) == str(rid):
                    slot = w
                    break
        elif self._waiting:
            slot = self._waiting[0]
        if slot is None:
            log_line(f"VALIDATE | uncorrelated result ignored request_id={rid!r}")
            return False
        self._waiting.remove(slot)
        if not slot[1].done():
            slot[1].set_result(valid)
        return True

    @property
    def outstanding(self) -> int:
        return len(self._waiting)
