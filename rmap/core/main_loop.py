import asyncio
from pathlib import Path
from typing import Any, Dict, Optional

from .. import __version__
from ..adapters.document_feed import DocumentFeed
from ..adapters.event_bus import EventBus, Transport
from ..adapters.map_surface import InMemoryMapSurface
from ..utils.log import log_line, setup_logging
from .config import cfg_float
from .session import MapSession

def log_transport(event: str, payload: Dict[str, Any]) -> None:
    log_line(f"BUS OUT | event={event} payload={payload}")

async def run_loop(cfg: Dict[str, Any], transport: Optional[Transport] = None,
                   one_shot: bool = False) -> None:
    setup_logging(Path(cfg["log_dir"]) if cfg.get("log_dir") else None)
    log_line(f"MAIN LOOP STARTED (Report Map Client v{__version__})")

    bus = EventBus(transport or log_transport)
    session = MapSession(cfg, bus)
    if not session.init(InMemoryMapSurface()):
        return

    feed = None
    if cfg.get("document_url"):
        feed = DocumentFeed(
            session.document,
            str(cfg["document_url"]),
            str(cfg.get("user_agent") or "ReportMapClient/1.0"),
            poll_s=cfg_float(cfg, "document_poll_s"),
            timeout_s=cfg_float(cfg, "http_timeout_s"),
        )

    try:
        if one_shot:
            if feed is not None:
                await asyncio.to_thread(feed.poll_once)
            return
        session.start_sweeper()
        if feed is not None:
            await feed.run()
        else:
            await asyncio.Event().wait()
    except asyncio.CancelledError:
        log_line("MAIN LOOP STOPPED (cancelled)")
        raise
    finally:
        r = session.reconciler
        if r is not None:
            log_line(f"CHECKS | durable={len(r.durable)} pending={len(r.ephemeral)} tombstones={len(r.tombstones)}")
        session.dispose()
