from typing import Any, Dict

# Field order of the canonical string. Changing it changes every fingerprint.
SIGNAL_FIELDS = (
    ("screen", "0x0x0"),
    ("timezone", "UTC"),
    ("language", ""),
    ("languages", ""),
    ("platform", ""),
    ("user_agent", ""),
    ("cookie_enabled", True),
    ("do_not_track", "unspecified"),
    ("hardware_concurrency", 0),
    ("device_memory", 0),
    ("canvas", ""),
    ("touch_support", False),
    ("webgl", "no-webgl"),
)

def _fmt(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value)
    return str(value)

def canonical_signals(signals: Dict[str, Any]) -> str:
    parts = []
    for name, default in SIGNAL_FIELDS:
        value = signals.get(name)
        parts.append(_fmt(default if value in (None, "") else value))
    return "|".join(parts)

def _to_base36(n: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    if n == 0:
        return "0"
    out = []
    while n:
        n, r = divmod(n, 36)
        out.append(digits[r])
    return "".join(reversed(out))

def hash_string(s: str) -> str:
    """31-multiplier rolling hash over UTF-16 code units, wrapped to signed 32 bits, base 36."""
    if not s:
        return "0"
    h = 0
    data = s.encode("utf-16-le")
    for i in range(0, len(data), 2):
        code = data[i] | (data[i + 1] << 8)
        h = ((h << 5) - h + code) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return _to_base36(abs(h))

def compute_fingerprint(signals: Dict[str, Any]) -> str:
    """Opaque per-session grouping key. Used for cleanup scoping, never for auth."""
    return hash_string(canonical_signals(signals))
