import asyncio
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from ..core.constants import REPORT_LIFETIME_S, SWEEP_INTERVAL_S
from ..utils.log import log_line
from ..utils.time import now_utc
from .reconcile import Reconciler

def expired_ids(reconciler: Reconciler, now: datetime,
                lifetime_s: float = REPORT_LIFETIME_S) -> List[str]:
    """
    Ids of known reports with now > inserted_at + lifetime. Known means a
    document node or a tracked durable marker; the exact boundary is kept.
    """
    lifetime = timedelta(seconds=lifetime_s)
    inserted: Dict[str, datetime] = {}
    for node in reconciler.document.nodes():
        if node.inserted_at is not None:
            inserted[node.id] = node.inserted_at
    for rid, marker in reconciler.durable.items():
        if marker.inserted_at is not None and rid not in inserted:
            inserted[rid] = marker.inserted_at
    return sorted(rid for rid, ts in inserted.items() if now > ts + lifetime)

def sweep(reconciler: Reconciler, now: Optional[datetime] = None,
          lifetime_s: float = REPORT_LIFETIME_S) -> List[str]:
    """Evict expired reports from the document and the stores. Returns the evicted ids."""
    now = now or now_utc()
    ids = expired_ids(reconciler, now, lifetime_s)
    for rid in ids:
        reconciler.document.remove(rid)
        reconciler.remove(rid)
    if ids:
        log_line(f"EXPIRY | evicted={len(ids)} ids={','.join(ids)}")
    return ids

class ExpirySweeper:
    """Runs sweep() every interval_s on the event loop until stopped."""

    def __init__(self, reconciler: Reconciler, interval_s: float = SWEEP_INTERVAL_S,
                 lifetime_s: float = REPORT_LIFETIME_S, clock: Callable[[], datetime] = now_utc):
        self.reconciler = reconciler
        self.interval_s = interval_s
        self.lifetime_s = lifetime_s
        self.clock = clock
        self._task: Optional[asyncio.Task] = None

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_s)
            try:
                sweep(self.reconciler, self.clock(), self.lifetime_s)
            except Exception as e:
                log_line(f"EXPIRY ERROR | err={e!r}", "ERROR")

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()
