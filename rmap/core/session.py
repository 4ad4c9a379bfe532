import asyncio
from typing import Any, Callable, Dict, List, Optional

from ..adapters.event_bus import EventBus
from ..adapters.map_surface import MapSurface
from ..adapters.storage import LocalStorage
from ..domain.boundaries import BoundaryCache
from ..domain.document import ReportDocument
from ..domain.expiry import ExpirySweeper
from ..domain.facts import fact_from_payload, facts_from_payloads
from ..domain.fingerprint import compute_fingerprint
from ..domain.geo import coerce_coords
from ..domain.reconcile import ReconciliationState, Reconciler
from ..domain.validator import CoordinateValidator
from ..utils.log import log_line
from ..utils.time import now_ms, now_utc
from . import constants as C
from .config import DEFAULTS, cfg_float
from .models import Marker, MarkerIcon, ReportFact, ReportType

SEARCH_ICON = MarkerIcon(emoji="🎯", color="#3b82f6", class_name=C.SEARCH_MARKER_CLASS)

class MapSession:
    """
    One map session: owns the reconciliation state between init() and
    dispose(), and wires the inbound events of the bus to it.

    The boundary cache and the coordinate validator live for the whole
    session object and work before init() as well.
    """

    def __init__(self, cfg: Optional[Dict[str, Any]] = None, bus: Optional[EventBus] = None,
                 document: Optional[ReportDocument] = None,
                 storage: Optional[LocalStorage] = None,
                 signals: Optional[Dict[str, Any]] = None,
                 clock_ms: Callable[[], int] = now_ms,
                 clock=now_utc):
        self.cfg = dict(DEFAULTS)
        self.cfg.update(cfg or {})
        self.bus = bus or EventBus()
        self.document = document if document is not None else ReportDocument()
        self.storage = storage if storage is not None else LocalStorage(self.cfg.get("storage_path"))
        self.fingerprint = compute_fingerprint(signals or {})
        self.clock = clock

        self.boundaries = BoundaryCache(
            self.bus, self.storage,
            ttl_s=cfg_float(self.cfg, "boundaries_ttl_s"),
            fetch_timeout_s=cfg_float(self.cfg, "boundaries_fetch_timeout_s"),
            clock=clock_ms,
        )
        self.validator = CoordinateValidator(self.bus, timeout_s=cfg_float(self.cfg, "validator_timeout_s"))
        self.bus.on(C.EV_BOUNDARIES_DATA, self._on_boundaries_data)
        self.bus.on(C.EV_VALIDATION_RESULT, self.validator.on_result)

        self.reconciler: Optional[Reconciler] = None
        self.sweeper: Optional[ExpirySweeper] = None
        self._search_markers: List[Any] = []
        self._unsubscribers: List[Callable[[], None]] = []

    @property
    def active(self) -> bool:
        return self.reconciler is not None

    # --- lifecycle ---

    def init(self, surface: Optional[MapSurface]) -> bool:
        if surface is None:
            log_line("SESSION | no map surface, initialization aborted", "WARN")
            return False
        if self.active:
            self.dispose()

        state = ReconciliationState.init(cfg_float(self.cfg, "match_tolerance_deg"))
        self.reconciler = Reconciler(surface, self.document, state)
        handlers = {
            C.EV_LOAD_EXISTING: self._on_load_existing,
            C.EV_ADD_MARKER: self._on_add_marker,
            C.EV_REMOVE_MARKER: self._on_remove_marker,
            C.EV_CLEANUP_COMPLETED: self._on_cleanup_completed,
            C.EV_CLEANUP_TEMPORARY: self._on_cleanup_temporary,
            C.EV_CLEANUP_ALL: self._on_cleanup_all,
            C.EV_FLY_TO_ADDRESS: self._on_fly_to_address,
        }
        for event, handler in handlers.items():
            self._unsubscribers.append(self.bus.on(event, handler))

        self.reconciler.reconcile_all(self.document.nodes())
        self._unsubscribers.append(self.document.observe(self._on_document_node))
        log_line(f"SESSION | initialized fingerprint={self.fingerprint} reports={len(state.durable)}")
        return True

    def start_sweeper(self) -> None:
        """Start the periodic expiry sweep (needs a running event loop)."""
        if not self.active:
            return
        if self.sweeper is None:
            self.sweeper = ExpirySweeper(
                self.reconciler,
                interval_s=cfg_float(self.cfg, "sweep_interval_s"),
                lifetime_s=cfg_float(self.cfg, "report_lifetime_s"),
                clock=self.clock,
            )
        self.sweeper.start()

    def dispose(self) -> None:
        if self.sweeper is not None:
            self.sweeper.stop()
            self.sweeper = None
        for off in self._unsubscribers:
            off()
        self._unsubscribers = []
        if self.reconciler is not None:
            for handle in self._search_markers:
                self.reconciler.surface.remove_layer(handle)
            self.reconciler.state.dispose()
            self.reconciler = None
            log_line("SESSION | disposed")
        self._search_markers = []

    # --- inbound ---

    def reconcile_fact(self, fact: ReportFact) -> Optional[str]:
        if not self.active:
            return None
        return self.reconciler.reconcile(fact)

    def _on_document_node(self, node: ReportFact) -> None:
        self.reconcile_fact(node)

    def _on_load_existing(self, payload: Dict[str, Any]) -> None:
        facts = facts_from_payloads(payload.get("reports"), C.EV_LOAD_EXISTING)
        self.reconciler.reconcile_all(facts)

    def _on_add_marker(self, payload: Dict[str, Any]) -> None:
        try:
            fact = fact_from_payload(payload)
        except ValueError as e:
            log_line(f"FACT DROPPED | source={C.EV_ADD_MARKER} | id={payload.get('id')!r} | err={e}", "WARN")
            return
        self.reconcile_fact(fact)

    def _on_remove_marker(self, payload: Dict[str, Any]) -> None:
        rid = payload.get("id")
        if rid is None:
            log_line(f"EVENT DROPPED | {C.EV_REMOVE_MARKER} without id", "WARN")
            return
        self.reconciler.remove(rid)

    def _on_boundaries_data(self, payload: Dict[str, Any]) -> None:
        self.boundaries.write_through(payload.get("boundaries"))

    def _on_cleanup_completed(self, payload: Dict[str, Any]) -> None:
        self.reconciler.rederive()

    def _on_cleanup_temporary(self, payload: Dict[str, Any]) -> None:
        fp = payload.get("fingerprint")
        if fp:
            self.reconciler.cleanup_ephemeral(str(fp))

    def _on_cleanup_all(self, payload: Dict[str, Any]) -> None:
        fp = payload.get("fingerprint")
        if not fp:
            return
        report_ids = payload.get("report_ids") or []
        if not isinstance(report_ids, list):
            log_line(f"EVENT DROPPED | {C.EV_CLEANUP_ALL} | report_ids is not a list: {report_ids!r}", "WARN")
            return
        self.reconciler.cleanup_all(str(fp), report_ids)

    def _on_fly_to_address(self, payload: Dict[str, Any]) -> None:
        try:
            lat, lng = coerce_coords(payload.get("lat"), payload.get("lng"))
        except ValueError as e:
            log_line(f"EVENT DROPPED | {C.EV_FLY_TO_ADDRESS} | err={e}", "WARN")
            return
        surface = self.reconciler.surface
        handle = surface.add_marker(lat, lng, SEARCH_ICON, f"Found Location | {payload.get('address') or ''}")
        self._search_markers.append(handle)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        loop.call_later(C.SEARCH_MARKER_TTL_S, self._drop_search_marker, handle)

    def _drop_search_marker(self, handle: Any) -> None:
        if handle in self._search_markers:
            self._search_markers.remove(handle)
            if self.active:
                self.reconciler.surface.remove_layer(handle)

    # --- outbound / user actions ---

    async def handle_map_click(self, lat: float, lng: float) -> bool:
        """True when the clicked point may take a report (server answer or local fallback)."""
        return await self.validator.validate(lat, lng)

    def submit_report(self, lat: Any, lng: Any, rtype: Any) -> Optional[Marker]:
        if not self.active:
            return None
        try:
            flat, flng = coerce_coords(lat, lng)
        except ValueError as e:
            log_line(f"SUBMIT REJECTED | err={e}", "WARN")
            return None
        rt = ReportType.coerce(rtype)
        self.bus.push(C.REQ_MAP_REPORT, {
            "latitude": flat,
            "longitude": flng,
            "type": rt.value,
            "fingerprint": self.fingerprint,
        })
        return self.reconciler.create_pending(flat, flng, rt, self.fingerprint)

    def select_address(self, lat: float, lng: float, address: str) -> None:
        self.bus.push(C.REQ_SELECT_ADDRESS, {"lat": lat, "lng": lng, "address": address})

    async def boundary_geometry(self) -> List[Dict[str, Any]]:
        return await self.boundaries.get()
