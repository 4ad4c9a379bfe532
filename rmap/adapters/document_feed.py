import asyncio
from typing import List, Optional, Tuple

import requests

from ..core.constants import DOCUMENT_POLL_S, HTTP_TIMEOUT_S
from ..core.models import ReportFact
from ..domain.document import ReportDocument, parse_report_nodes
from ..domain.ids import normalize_id
from ..utils.log import log_line

def fetch_document_html(url: str, user_agent: str, timeout_s: float = HTTP_TIMEOUT_S) -> Optional[str]:
    headers = {"User-Agent": user_agent, "Accept": "text/html"}
    try:
        r = requests.get(url, headers=headers, timeout=timeout_s)
        r.raise_for_status()
        return r.text
    except requests.RequestException as e:
        log_line(f"DOCUMENT | fetch failed url={url} | err={e!r}", "WARN")
        return None

class DocumentFeed:
    """
    Polls the server-rendered report list and diffs it into the ReportDocument.
    New nodes reach the document's observers (and so the reconciler); vanished
    nodes are dropped from the document only.
    """

    def __init__(self, document: ReportDocument, url: str, user_agent: str,
                 poll_s: float = DOCUMENT_POLL_S, timeout_s: float = HTTP_TIMEOUT_S):
        self.document = document
        self.url = url
        self.user_agent = user_agent
        self.poll_s = poll_s
        self.timeout_s = timeout_s

    def apply(self, nodes: List[ReportFact]) -> Tuple[int, int]:
        seen = {normalize_id(n.id) for n in nodes}
        removed = 0
        for rid in self.document.ids():
            if rid not in seen and self.document.remove(rid):
                removed += 1
        added = sum(1 for n in nodes if self.document.add(n))
        if added or removed:
            log_line(f"DOCUMENT | added={added} removed={removed} total={len(self.document)}")
        return added, removed

    def poll_once(self) -> Optional[Tuple[int, int]]:
        html = fetch_document_html(self.url, self.user_agent, self.timeout_s)
        if html is None:
            return None
        return self.apply(parse_report_nodes(html))

    async def run(self) -> None:
        while True:
            html = await asyncio.to_thread(fetch_document_html, self.url, self.user_agent, self.timeout_s)
            if html is not None:
                self.apply(parse_report_nodes(html))
            await asyncio.sleep(self.poll_s)
