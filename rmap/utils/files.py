import json
import os
import pathlib
import tempfile
from pathlib import Path
from typing import Any, Union

def load_json(path: Union[str, pathlib.Path], default: Any) -> Any:
    """Load JSON safely.
    If file is missing or invalid JSON, return default.
    """
    path = Path(path)
    try:
        if not path.exists():
            return default
        with path.open("r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError):
        return default

def save_json(path: Union[str, pathlib.Path], obj: Any) -> None:
    """
    Atomic JSON write.
    The temp file is unique per write so two sessions sharing a storage file never collide.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    data = json.dumps(obj, ensure_ascii=False, indent=2)
    if not data.endswith("\n"):
        data += "\n"

    fd = None
    tmp_name = None
    try:
        fd, tmp_name = tempfile.mkstemp(prefix=path.name + ".", suffix=".tmp", dir=str(path.parent))
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            fd = None
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
        tmp_name = None
    finally:
        if fd is not None:
            os.close(fd)
        if tmp_name:
            Path(tmp_name).unlink(missing_ok=True)
