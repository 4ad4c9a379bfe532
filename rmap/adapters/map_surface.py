import itertools
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol

from ..core.models import MarkerIcon

@dataclass
class MarkerHandle:
    key: int
    lat: float
    lng: float
    icon: MarkerIcon
    caption: str = ""
    report_id: Optional[str] = None

class MapSurface(Protocol):
    """What the session needs from a rendering library."""

    def add_marker(self, lat: float, lng: float, icon: MarkerIcon, caption: str = "") -> MarkerHandle: ...

    def update_marker(self, handle: MarkerHandle, icon: Optional[MarkerIcon] = None,
                      caption: Optional[str] = None, lat: Optional[float] = None,
                      lng: Optional[float] = None) -> None: ...

    def remove_layer(self, handle: MarkerHandle) -> bool: ...

    def has_layer(self, handle: MarkerHandle) -> bool: ...

    def layers(self) -> List[MarkerHandle]: ...

class InMemoryMapSurface:
    """Marker layers kept in a dict. Used by the replay tool and the tests."""

    def __init__(self):
        self._layers: Dict[int, MarkerHandle] = {}
        self._keys = itertools.count(1)

    def add_marker(self, lat, lng, icon, caption=""):
        handle = MarkerHandle(key=next(self._keys), lat=lat, lng=lng, icon=icon, caption=caption)
        self._layers[handle.key] = handle
        return handle

    def update_marker(self, handle, icon=None, caption=None, lat=None, lng=None):
        if icon is not None:
            handle.icon = icon
        if caption is not None:
            handle.caption = caption
        if lat is not None and lng is not None:
            handle.lat, handle.lng = lat, lng

    def remove_layer(self, handle):
        return self._layers.pop(handle.key, None) is not None

    def has_layer(self, handle):
        return self._layers.get(handle.key) is handle

    def layers(self):
        return list(self._layers.values())

    def __len__(self):
        return len(self._layers)
