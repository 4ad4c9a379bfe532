import re
from typing import Any

RE_INT = re.compile(r"^[+-]?\d+$")

def normalize_id(raw: Any) -> str:
    """
    Canonical string form of a report id.
    Integers, integral floats and digit-only strings all collapse to the same
    decimal text ("0101", 101 and 101.0 -> "101"); other strings are only stripped.
    """
    if raw is None:
        return ""
    if isinstance(raw, bool):
        return str(int(raw))
    if isinstance(raw, int):
        return str(raw)
    if isinstance(raw, float):
        if raw.is_integer():
            return str(int(raw))
        return repr(raw)
    s = str(raw).strip()
    if RE_INT.match(s):
        return str(int(s))
    return s
