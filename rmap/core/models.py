from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Dict, Any

from .constants import PENDING_COLOR, CAPTION_PENDING, CAPTION_DURABLE, MARKER_CLASS

class ReportType(str, Enum):
    CHECKPOINT = "checkpoint"
    RAID = "raid"
    PATROL = "patrol"
    DETENTION = "detention"
    OTHER = "other"

    @classmethod
    def coerce(cls, value: Any) -> "ReportType":
        """Map any raw type string to a ReportType; unknown values become OTHER."""
        if isinstance(value, cls):
            return value
        s = str(value or "").strip().lower()
        for t in cls:
            if t.value == s:
                return t
        return cls.OTHER

# type -> (emoji, color, display name)
TYPE_STYLE: Dict[ReportType, tuple] = {
    ReportType.CHECKPOINT: ("🛑", "#ef4444", "Checkpoint"),
    ReportType.RAID: ("🏠", "#f97316", "Operation"),
    ReportType.PATROL: ("👮", "#3b82f6", "Patrol"),
    ReportType.DETENTION: ("🧊", "#8b5cf6", "Facility"),
    ReportType.OTHER: ("📍", "#6b7280", "Report"),
}

class MarkerState(str, Enum):
    PENDING = "pending"
    PERMANENT = "permanent"
    REMOVED = "removed"

_TRANSITIONS = {
    MarkerState.PENDING: {MarkerState.PERMANENT, MarkerState.REMOVED},
    MarkerState.PERMANENT: {MarkerState.REMOVED},
    MarkerState.REMOVED: set(),
}

class MarkerStateError(RuntimeError):
    pass

@dataclass(frozen=True)
class MarkerIcon:
    emoji: str
    color: str
    class_name: str = MARKER_CLASS

def icon_for(rtype: ReportType, pending: bool = False) -> MarkerIcon:
    emoji, color, _ = TYPE_STYLE[rtype]
    return MarkerIcon(emoji=emoji, color=PENDING_COLOR if pending else color)

def caption_for(rtype: ReportType, pending: bool = False) -> str:
    emoji, _, name = TYPE_STYLE[rtype]
    return f"{emoji} {name} | {CAPTION_PENDING if pending else CAPTION_DURABLE}"

@dataclass
class ReportFact:
    """One inbound truth about a server report, from any producer."""
    id: str
    lat: float
    lng: float
    type: ReportType
    inserted_at: Optional[datetime] = None

@dataclass
class Marker:
    """A visual handle plus its lifecycle state. `report_id` is set once durable."""
    handle: Any
    lat: float
    lng: float
    type: ReportType
    state: MarkerState = MarkerState.PENDING
    report_id: Optional[str] = None
    fingerprint: Optional[str] = None
    seq: int = 0
    inserted_at: Optional[datetime] = None

    def advance(self, new_state: MarkerState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise MarkerStateError(f"illegal marker transition {self.state.value} -> {new_state.value}")
        self.state = new_state

@dataclass
class CacheEntry:
    payload: List[Dict[str, Any]] = field(default_factory=list)
    timestamp: int = 0  # epoch ms

    def is_valid(self, now_ms: int, ttl_ms: int) -> bool:
        # A record stamped in the future is not trusted.
        return 0 <= now_ms - self.timestamp < ttl_ms
