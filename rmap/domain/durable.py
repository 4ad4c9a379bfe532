from typing import Any, Dict, Iterator, List, Optional, Tuple

from ..core.models import Marker
from .ids import normalize_id

class DurableIndex:
    """Canonical report id -> durable marker, with a reverse lookup by visual handle."""

    def __init__(self):
        self._by_id: Dict[str, Marker] = {}
        self._by_handle: Dict[int, str] = {}

    def put(self, report_id: Any, marker: Marker) -> None:
        rid = normalize_id(report_id)
        old = self._by_id.get(rid)
        if old is not None:
            self._by_handle.pop(id(old.handle), None)
        marker.report_id = rid
        self._by_id[rid] = marker
        self._by_handle[id(marker.handle)] = rid

    def get(self, report_id: Any) -> Optional[Marker]:
        return self._by_id.get(normalize_id(report_id))

    def pop(self, report_id: Any) -> Optional[Marker]:
        marker = self._by_id.pop(normalize_id(report_id), None)
        if marker is not None:
            self._by_handle.pop(id(marker.handle), None)
        return marker

    def reverse_lookup(self, handle: Any) -> Optional[str]:
        return self._by_handle.get(id(handle))

    def ids(self) -> List[str]:
        return sorted(self._by_id)

    def items(self) -> List[Tuple[str, Marker]]:
        return sorted(self._by_id.items())

    def snapshot(self) -> Dict[str, Tuple[float, float, str]]:
        """id -> (lat, lng, type); used to compare index contents."""
        return {rid: (m.lat, m.lng, m.type.value) for rid, m in self._by_id.items()}

    def clear(self) -> None:
        self._by_id.clear()
        self._by_handle.clear()

    def __contains__(self, report_id: Any) -> bool:
        return normalize_id(report_id) in self._by_id

    def __len__(self) -> int:
        return len(self._by_id)

    def __iter__(self) -> Iterator[str]:
        return iter(self.ids())
