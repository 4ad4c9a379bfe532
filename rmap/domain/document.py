import re
from typing import Callable, Dict, List, Optional

from ..core.constants import REPORT_NODE_PREFIX
from ..core.models import ReportFact
from .facts import facts_from_payloads
from .ids import normalize_id

RE_REPORT_NODE = re.compile(r"<[a-zA-Z][\w-]*\b[^>]*\sid=\"" + re.escape(REPORT_NODE_PREFIX) + r"([^\"]+)\"[^>]*>")
RE_DATA_ATTR = re.compile(r"\bdata-([\w-]+)=\"([^\"]*)\"")

Observer = Callable[[ReportFact], None]

def parse_report_nodes(html: str) -> List[ReportFact]:
    """
    Extract report nodes from rendered HTML: elements with id="reports-<id>"
    carrying data-latitude / data-longitude / data-type / data-inserted-at.
    Nodes with unusable attributes are skipped.
    """
    payloads = []
    for m in RE_REPORT_NODE.finditer(html or ""):
        attrs = {k.replace("-", "_"): v for k, v in RE_DATA_ATTR.findall(m.group(0))}
        if not attrs.get("type"):
            continue
        payloads.append({
            "id": m.group(1),
            "latitude": attrs.get("latitude"),
            "longitude": attrs.get("longitude"),
            "type": attrs.get("type"),
            "inserted_at": attrs.get("inserted_at"),
        })
    return facts_from_payloads(payloads, "document")

class ReportDocument:
    """The rendered report list, keyed by canonical id, with insertion observers."""

    def __init__(self, nodes: Optional[List[ReportFact]] = None):
        self._nodes: Dict[str, ReportFact] = {}
        self._observers: List[Observer] = []
        for n in nodes or []:
            self._nodes[normalize_id(n.id)] = n

    def observe(self, callback: Observer) -> Callable[[], None]:
        self._observers.append(callback)

        def _unsubscribe():
            if callback in self._observers:
                self._observers.remove(callback)
        return _unsubscribe

    def add(self, node: ReportFact) -> bool:
        rid = normalize_id(node.id)
        if rid in self._nodes:
            return False
        self._nodes[rid] = node
        for cb in list(self._observers):
            cb(node)
        return True

    def remove(self, report_id) -> bool:
        return self._nodes.pop(normalize_id(report_id), None) is not None

    def get(self, report_id) -> Optional[ReportFact]:
        return self._nodes.get(normalize_id(report_id))

    def nodes(self) -> List[ReportFact]:
        return [self._nodes[k] for k in sorted(self._nodes)]

    def ids(self) -> List[str]:
        return sorted(self._nodes)

    def __contains__(self, report_id) -> bool:
        return normalize_id(report_id) in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)
