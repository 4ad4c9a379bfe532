#!/usr/bin/env python3
# Report Map client (event bus + rendered report list -> reconciled marker state)
#
# Files:
# - config.json   (tracked)   document_url + user_agent + timings, see rmap/core/config.py
# - storage.json  (local)     persisted client storage (boundary geometry cache)
# - logs/         (local)     daily client logs
import argparse
import asyncio
import sys
from pathlib import Path

from rmap.core.config import load_config
from rmap.core.main_loop import run_loop

def main() -> int:
    parser = argparse.ArgumentParser(description="Run the report map client session")
    parser.add_argument("--config", default="config.json")
    parser.add_argument("--once", action="store_true", help="poll the report list once and exit")
    args = parser.parse_args()

    cfg = load_config(Path(args.config))
    try:
        asyncio.run(run_loop(cfg, one_shot=args.once))
    except KeyboardInterrupt:
        print("stopped", flush=True)
    return 0

if __name__ == "__main__":
    sys.exit(main())
