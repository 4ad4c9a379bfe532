from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from ..adapters.map_surface import MapSurface
from ..core.constants import MATCH_TOLERANCE_DEG, MARKER_CLASS
from ..core.models import (
    Marker, MarkerState, ReportFact, ReportType, caption_for, icon_for
)
from ..utils.log import log_line
from .document import ReportDocument
from .durable import DurableIndex
from .ephemeral import EphemeralStore
from .facts import fact_sort_key
from .geo import haversine_m
from .ids import normalize_id
from .tombstones import TombstoneSet

# reconcile() outcomes
IGNORED_TOMBSTONED = "ignored_tombstoned"
IGNORED_DUPLICATE = "ignored_duplicate"
PROMOTED = "promoted"
MATERIALIZED = "materialized"

@dataclass
class ReconciliationState:
    """All mutable marker state of one map session."""
    ephemeral: EphemeralStore = field(default_factory=EphemeralStore)
    durable: DurableIndex = field(default_factory=DurableIndex)
    tombstones: TombstoneSet = field(default_factory=TombstoneSet)

    @classmethod
    def init(cls, tolerance: float = MATCH_TOLERANCE_DEG) -> "ReconciliationState":
        return cls(ephemeral=EphemeralStore(tolerance))

    def dispose(self) -> None:
        self.ephemeral.clear()
        self.durable.clear()
        self.tombstones.clear()

class Reconciler:
    """
    Single owner of the ephemeral store, the durable index and the tombstones.

    Every inbound fact goes through reconcile(): tombstoned ids are ignored,
    already durable ids are ignored, otherwise the first matching pending
    marker is promoted in place or a new durable marker is materialized.
    """

    def __init__(self, surface: MapSurface, document: ReportDocument,
                 state: Optional[ReconciliationState] = None):
        self.surface = surface
        self.document = document
        self.state = state or ReconciliationState.init()

    @property
    def ephemeral(self) -> EphemeralStore:
        return self.state.ephemeral

    @property
    def durable(self) -> DurableIndex:
        return self.state.durable

    @property
    def tombstones(self) -> TombstoneSet:
        return self.state.tombstones

    # --- pending ---

    def create_pending(self, lat: float, lng: float, rtype: Any, fingerprint: Optional[str]) -> Marker:
        rtype = ReportType.coerce(rtype)
        handle = self.surface.add_marker(lat, lng, icon_for(rtype, pending=True), caption_for(rtype, pending=True))
        marker = Marker(handle=handle, lat=lat, lng=lng, type=rtype, fingerprint=fingerprint)
        self.ephemeral.add(marker)
        log_line(f"PENDING | created seq={marker.seq} type={rtype.value} at {lat:.5f},{lng:.5f}")
        return marker

    # --- reconcile ---

    def reconcile(self, fact: ReportFact) -> str:
        rid = normalize_id(fact.id)
        if rid in self.tombstones:
            return IGNORED_TOMBSTONED
        if rid in self.durable:
            return IGNORED_DUPLICATE

        pending = self.ephemeral.find_match(fact.lat, fact.lng, fact.type)
        if pending is not None:
            self.ephemeral.discard(pending)
            dist = haversine_m(pending.lat, pending.lng, fact.lat, fact.lng)
            self.surface.update_marker(
                pending.handle,
                icon=icon_for(fact.type),
                caption=caption_for(fact.type),
                lat=fact.lat,
                lng=fact.lng,
            )
            pending.advance(MarkerState.PERMANENT)
            pending.lat, pending.lng = fact.lat, fact.lng
            pending.inserted_at = fact.inserted_at
            self.durable.put(rid, pending)
            pending.handle.report_id = rid
            log_line(f"RECONCILE | promoted seq={pending.seq} -> id={rid} dist={dist:.0f}m")
            return PROMOTED

        handle = self.surface.add_marker(fact.lat, fact.lng, icon_for(fact.type), caption_for(fact.type))
        marker = Marker(
            handle=handle, lat=fact.lat, lng=fact.lng, type=fact.type,
            state=MarkerState.PERMANENT, inserted_at=fact.inserted_at,
        )
        self.durable.put(rid, marker)
        handle.report_id = rid
        return MATERIALIZED

    def reconcile_all(self, facts: Iterable[ReportFact]) -> Dict[str, str]:
        """
        Bulk reconcile. Facts are collapsed per id (latest inserted_at wins, ties
        broken on coordinates and type) and applied in id order, so the result
        does not depend on the order the facts arrived in.
        """
        chosen: Dict[str, ReportFact] = {}
        for f in facts:
            rid = normalize_id(f.id)
            cur = chosen.get(rid)
            if cur is None or fact_sort_key(f) > fact_sort_key(cur):
                chosen[rid] = f
        outcomes = {rid: self.reconcile(chosen[rid]) for rid in sorted(chosen)}
        counts: Dict[str, int] = {}
        for o in outcomes.values():
            counts[o] = counts.get(o, 0) + 1
        if outcomes:
            summary = " ".join(f"{k}={v}" for k, v in sorted(counts.items()))
            log_line(f"RECONCILE ALL | facts={len(outcomes)} {summary}")
        return outcomes

    # --- removal ---

    def remove(self, report_id: Any) -> bool:
        """Tombstone the id and drop its durable marker. True when a marker was removed."""
        rid = self.tombstones.tombstone(report_id)
        marker = self.durable.pop(rid)
        if marker is None:
            return False
        marker.advance(MarkerState.REMOVED)
        self.surface.remove_layer(marker.handle)
        log_line(f"REMOVE | id={rid}")
        return True

    def cleanup_ephemeral(self, fingerprint: str) -> int:
        markers = self.ephemeral.drop_fingerprint(fingerprint)
        for m in markers:
            m.advance(MarkerState.REMOVED)
            if self.surface.has_layer(m.handle):
                self.surface.remove_layer(m.handle)
        if markers:
            log_line(f"CLEANUP | fingerprint={fingerprint} pending_removed={len(markers)}")
        return len(markers)

    def cleanup_all(self, fingerprint: str, report_ids: Iterable[Any]) -> int:
        removed = self.cleanup_ephemeral(fingerprint)
        targets = []
        for raw in report_ids or []:
            rid = normalize_id(raw)
            if not rid:
                continue
            targets.append(rid)
            if self.remove(rid):
                removed += 1
            self.document.remove(rid)

        removed += self._repair_drift(set(targets))
        log_line(f"CLEANUP ALL | fingerprint={fingerprint} ids={len(targets)} removed={removed}")
        return removed

    def _repair_drift(self, target_ids: set) -> int:
        """
        Consistency repair: any report marker still on the surface that can be
        tied to one of target_ids is removed. Hits mean the index and the
        surface had drifted apart.
        """
        if not target_ids:
            return 0
        hits = 0
        for handle in self.surface.layers():
            if getattr(handle.icon, "class_name", None) != MARKER_CLASS:
                continue
            rid = self.durable.reverse_lookup(handle) or self._tagged_id(handle)
            if rid and rid in target_ids:
                self.surface.remove_layer(handle)
                self.durable.pop(rid)
                hits += 1
                log_line(f"INDEX DRIFT | removed untracked layer key={handle.key} id={rid}", "WARN")
        return hits

    def _tagged_id(self, handle) -> Optional[str]:
        tag = getattr(handle, "report_id", None)
        return normalize_id(tag) if tag is not None else None

    # --- refresh ---

    def rederive(self) -> Dict[str, str]:
        """Rebuild the durable index from the document. Pending markers are kept."""
        for _, marker in self.durable.items():
            marker.advance(MarkerState.REMOVED)
            self.surface.remove_layer(marker.handle)
        self.durable.clear()
        return self.reconcile_all(self.document.nodes())

    def pending(self) -> List[Marker]:
        return self.ephemeral.entries()
