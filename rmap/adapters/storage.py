import pathlib
from typing import Dict, Optional, Union

from ..utils.files import load_json, save_json

class LocalStorage:
    """String key -> string value store persisted as one JSON object file."""

    def __init__(self, path: Optional[Union[str, pathlib.Path]] = None):
        self.path = pathlib.Path(path) if path else None
        data = load_json(self.path, {}) if self.path else {}
        self._data: Dict[str, str] = {
            str(k): v for k, v in data.items() if isinstance(v, str)
        } if isinstance(data, dict) else {}

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = value
        self._flush()

    def remove_item(self, key: str) -> None:
        if self._data.pop(key, None) is not None:
            self._flush()

    def _flush(self) -> None:
        if self.path:
            save_json(self.path, self._data)

    def __contains__(self, key: str) -> bool:
        return key in self._data
