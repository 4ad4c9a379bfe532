import pathlib
from typing import Any, Dict, Union

from ..utils.files import load_json
from ..utils.log import log_line
from . import constants as C

DEFAULTS: Dict[str, Any] = {
    "document_url": "",
    "document_poll_s": C.DOCUMENT_POLL_S,
    "user_agent": "ReportMapClient/1.0",
    "http_timeout_s": C.HTTP_TIMEOUT_S,
    "storage_path": "storage.json",
    "log_dir": "logs",
    "sweep_interval_s": C.SWEEP_INTERVAL_S,
    "report_lifetime_s": C.REPORT_LIFETIME_S,
    "boundaries_ttl_s": C.BOUNDARIES_TTL_S,
    "boundaries_fetch_timeout_s": C.BOUNDARIES_FETCH_TIMEOUT_S,
    "validator_timeout_s": C.VALIDATOR_TIMEOUT_S,
    "match_tolerance_deg": C.MATCH_TOLERANCE_DEG,
}

def load_config(path: Union[str, pathlib.Path, None]) -> Dict[str, Any]:
    """Defaults overlaid with config.json (missing or invalid file -> defaults)."""
    cfg = dict(DEFAULTS)
    if path is None:
        return cfg
    data = load_json(pathlib.Path(path), {})
    if not isinstance(data, dict):
        log_line(f"CONFIG | {path} is not an object, using defaults", "WARN")
        return cfg
    cfg.update(data)
    return cfg

def cfg_float(cfg: Dict[str, Any], key: str) -> float:
    """Numeric setting; a bad value falls back to the default."""
    try:
        value = float(cfg.get(key, DEFAULTS[key]))
    except (TypeError, ValueError):
        log_line(f"CONFIG | bad value for {key}={cfg.get(key)!r}, using default", "WARN")
        value = float(DEFAULTS[key])
    if value <= 0:
        value = float(DEFAULTS[key])
    return value
