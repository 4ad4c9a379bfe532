import threading
from datetime import datetime
from pathlib import Path
from typing import Optional, Any
from .time import TZ_UTC

# Set by the main loop once the log directory is known
LOG_DIR: Optional[Path] = None
CLIENT_LOG_PATH: Optional[Path] = None

_LOG_LOCK = threading.Lock()

def setup_logging(log_dir: Optional[Path], log_name: Optional[str] = None) -> None:
    """Point log_line at a daily file under log_dir (stdout only when log_dir is None)."""
    global LOG_DIR, CLIENT_LOG_PATH
    if log_dir is None:
        LOG_DIR = None
        CLIENT_LOG_PATH = None
        return
    LOG_DIR = Path(log_dir)
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    if not log_name:
        log_name = f"client-{datetime.now(TZ_UTC).strftime('%Y-%m-%d')}.log"
    CLIENT_LOG_PATH = LOG_DIR / log_name

def _append(path: Path, line: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as f:
        f.write(line + "\n")

def log_line(msg: Any, level: str = "INFO") -> None:
    """
    Logging wrapper (single timestamp, readable):
    - Prefix every line with: YYYY-MM-DD // HH:MM:SS+00:00 -
    - Non-INFO levels are spelled out after the prefix.
    """
    line = str(msg).strip()
    level = (level or "INFO").upper()

    with _LOG_LOCK:
        ts = datetime.now(TZ_UTC)
        prefix = ts.strftime("%Y-%m-%d // %H:%M:%S%z")
        if len(prefix) >= 5:
            prefix = prefix[:-2] + ":" + prefix[-2:]

        if level != "INFO":
            line = f"{level} | {line}"
        full = f"{prefix} - {line}" if line else f"{prefix} -"

        if CLIENT_LOG_PATH:
            _append(CLIENT_LOG_PATH, full)

        print(full, flush=True)
