from typing import Any, Iterator, Set

from .ids import normalize_id

class TombstoneSet:
    """Ids removed during this session. Only grows until clear() at teardown."""

    def __init__(self):
        self._ids: Set[str] = set()

    def tombstone(self, report_id: Any) -> str:
        rid = normalize_id(report_id)
        self._ids.add(rid)
        return rid

    def is_tombstoned(self, report_id: Any) -> bool:
        return normalize_id(report_id) in self._ids

    def clear(self) -> None:
        self._ids.clear()

    def __contains__(self, report_id: Any) -> bool:
        return self.is_tombstoned(report_id)

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._ids))
