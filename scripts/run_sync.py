#!/usr/bin/env python3
"""Run one sync cycle and exit.

Usage: python scripts/run_sync.py [stock|bond|fund ...]
"""
import logging
import sys

from dotenv import load_dotenv

from market_sync.config import FAMILIES, SyncSettings
from market_sync.sync_service import SyncService


def main():
    load_dotenv()
    families = [f.lower() for f in sys.argv[1:]] or None
    if families and any(f not in FAMILIES for f in families):
        print(f"Usage: run_sync.py [{'|'.join(FAMILIES)} ...]")
        sys.exit(2)

    settings = SyncSettings.from_env()
    logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))

    print(f"Syncing {', '.join(families or settings.families)}...")
    with SyncService(settings) as service:
        report = service.run_once(families)
    failed = report.failed_stages
    for stage in failed:
        print(f"FAILED {stage.family}/{stage.stage}: {stage.error}")
    print("Done")
    sys.exit(1 if failed else 0)


if __name__ == '__main__':
    main()
