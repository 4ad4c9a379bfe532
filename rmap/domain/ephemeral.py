from collections import defaultdict
from typing import Dict, List, Optional, Set, Tuple

from ..core.constants import MATCH_TOLERANCE_DEG
from ..core.models import Marker, ReportType
from .geo import grid_cell, within_tolerance

class EphemeralStore:
    """
    Pending (optimistic) markers not yet tied to a server id.

    Entries are keyed by insertion sequence. Two secondary indexes are kept in
    step with the primary map: fingerprint -> sequences, and a coordinate grid
    whose cell size equals the match tolerance, so a proximity lookup only has
    to look at the 3x3 neighbourhood of the query cell.
    """

    def __init__(self, tolerance: float = MATCH_TOLERANCE_DEG):
        self.tolerance = tolerance
        self._entries: Dict[int, Marker] = {}
        self._by_fingerprint: Dict[str, List[int]] = defaultdict(list)
        self._by_cell: Dict[Tuple[int, int], Set[int]] = defaultdict(set)
        self._next_seq = 0

    def add(self, marker: Marker) -> Marker:
        self._next_seq += 1
        marker.seq = self._next_seq
        self._entries[marker.seq] = marker
        if marker.fingerprint:
            self._by_fingerprint[marker.fingerprint].append(marker.seq)
        self._by_cell[grid_cell(marker.lat, marker.lng, self.tolerance)].add(marker.seq)
        return marker

    def discard(self, marker: Marker) -> bool:
        if self._entries.pop(marker.seq, None) is None:
            return False
        cell = grid_cell(marker.lat, marker.lng, self.tolerance)
        seqs = self._by_cell.get(cell)
        if seqs is not None:
            seqs.discard(marker.seq)
            if not seqs:
                del self._by_cell[cell]
        if marker.fingerprint:
            bucket = self._by_fingerprint.get(marker.fingerprint)
            if bucket is not None and marker.seq in bucket:
                bucket.remove(marker.seq)
                if not bucket:
                    del self._by_fingerprint[marker.fingerprint]
        return True

    def find_match(self, lat: float, lng: float, rtype: ReportType) -> Optional[Marker]:
        """First pending entry (insertion order) of the same type within tolerance."""
        ci, cj = grid_cell(lat, lng, self.tolerance)
        candidates = []
        for di in (-1, 0, 1):
            for dj in (-1, 0, 1):
                candidates.extend(self._by_cell.get((ci + di, cj + dj), ()))
        for seq in sorted(candidates):
            m = self._entries[seq]
            if m.type == rtype and within_tolerance(m.lat, m.lng, lat, lng, self.tolerance):
                return m
        return None

    def for_fingerprint(self, fingerprint: str) -> List[Marker]:
        return [self._entries[s] for s in self._by_fingerprint.get(fingerprint, []) if s in self._entries]

    def drop_fingerprint(self, fingerprint: str) -> List[Marker]:
        """Remove every entry recorded under fingerprint and clear its bucket."""
        markers = self.for_fingerprint(fingerprint)
        for m in markers:
            self.discard(m)
        self._by_fingerprint.pop(fingerprint, None)
        return markers

    def entries(self) -> List[Marker]:
        return [self._entries[s] for s in sorted(self._entries)]

    def fingerprints(self) -> List[str]:
        return sorted(self._by_fingerprint)

    def clear(self) -> None:
        self._entries.clear()
        self._by_fingerprint.clear()
        self._by_cell.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, marker: Marker) -> bool:
        return self._entries.get(marker.seq) is marker
