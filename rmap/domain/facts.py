from typing import Any, Dict, List, Tuple

from ..core.models import ReportFact, ReportType
from ..utils.log import log_line
from ..utils.time import parse_timestamp
from .geo import coerce_coords
from .ids import normalize_id

def fact_from_payload(payload: Dict[str, Any]) -> ReportFact:
    """
    Build a ReportFact from an event payload or a document node's attributes.
    Raises ValueError when the id or the coordinates are unusable.
    """
    rid = normalize_id(payload.get("id"))
    if not rid:
        raise ValueError("missing report id")
    lat = payload.get("latitude", payload.get("lat"))
    lng = payload.get("longitude", payload.get("lng"))
    flat, flng = coerce_coords(lat, lng)
    inserted = payload.get("inserted_at", payload.get("insertedAt"))
    return ReportFact(
        id=rid,
        lat=flat,
        lng=flng,
        type=ReportType.coerce(payload.get("type")),
        inserted_at=parse_timestamp(inserted),
    )

def facts_from_payloads(payloads: Any, source: str) -> List[ReportFact]:
    """Convert a list of payloads, dropping (and logging) malformed ones."""
    facts: List[ReportFact] = []
    if payloads is None:
        return facts
    if not isinstance(payloads, list):
        log_line(f"FACTS DROPPED | source={source} | not a list: {type(payloads).__name__}", "WARN")
        return facts
    for p in payloads:
        if not isinstance(p, dict):
            log_line(f"FACT DROPPED | source={source} | not an object: {p!r}", "WARN")
            continue
        try:
            facts.append(fact_from_payload(p))
        except ValueError as e:
            log_line(f"FACT DROPPED | source={source} | id={p.get('id')!r} | err={e}", "WARN")
    return facts

def fact_sort_key(fact: ReportFact) -> Tuple:
    ins = fact.inserted_at.timestamp() if fact.inserted_at else float("-inf")
    return (ins, fact.lat, fact.lng, fact.type.value)
