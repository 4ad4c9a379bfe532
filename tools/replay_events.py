#!/usr/bin/env python3
"""
Replay a recorded event stream into a fresh map session.

Input is JSON lines, one inbound event per line:
    {"event": "add_report_marker", "payload": {"id": 7, "latitude": 40.1, ...}}
Lines with "event": "submit" act as a local report submission
({"payload": {"lat": ..., "lng": ..., "type": ...}}).

The session runs over the in-memory map surface; at the end the durable,
pending and tombstone counts are printed. Exit status is 1 if a line could
not be parsed.

Usage:
    python tools/replay_events.py events.jsonl [--ids]
"""
import argparse, json, sys
from pathlib import Path

from rmap.adapters.event_bus import EventBus
from rmap.adapters.map_surface import InMemoryMapSurface
from rmap.adapters.storage import LocalStorage
from rmap.core.session import MapSession

def replay(lines, session: MapSession) -> list[tuple[int, str]]:
    errors: list[tuple[int, str]] = []
    for n, raw in enumerate(lines, start=1):
        raw = raw.strip()
        if not raw:
            continue
        try:
            rec = json.loads(raw)
            event = str(rec["event"])
            payload = rec.get("payload") or {}
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            errors.append((n, f"bad line: {e}"))
            continue
        if not isinstance(payload, dict):
            errors.append((n, "payload is not an object"))
            continue
        if event == "submit":
            session.submit_report(payload.get("lat"), payload.get("lng"), payload.get("type"))
        else:
            session.bus.deliver(event, payload)
    return errors

def main() -> int:
    parser = argparse.ArgumentParser(description="Replay inbound events into a map session")
    parser.add_argument("events")
    parser.add_argument("--ids", action="store_true", help="print durable ids")
    args = parser.parse_args()

    path = Path(args.events)
    if not path.exists():
        raise SystemExit(f"File not found: {path}")

    session = MapSession({"log_dir": None}, EventBus(), storage=LocalStorage(None))
    session.init(InMemoryMapSurface())
    with open(path, "r", encoding="utf-8") as f:
        errors = replay(f, session)

    r = session.reconciler
    for n, msg in errors:
        print(f"line {n}\t{msg}")
    print(f"durable={len(r.durable)} pending={len(r.ephemeral)} tombstones={len(r.tombstones)}")
    if args.ids:
        for rid in r.durable.ids():
            print(rid)
    session.dispose()
    return 1 if errors else 0

if __name__ == "__main__":
    sys.exit(main())
