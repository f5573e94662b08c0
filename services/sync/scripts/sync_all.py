#!/usr/bin/env python3
"""Scheduled sync job for Railway Cron.

Behavior:
- Full sync: advertisers, then offers, then products for every network
- Global reconciliation of advertiser counters at the end
- With SYNC_NETWORK set, only that network is synced (and reconciled)

Run (local / Railway):
  cd services/sync
  python -m scripts.sync_all

Optional env vars:
  SYNC_NETWORK="Rakuten"     # one of Rakuten, CJ, AWIN, Pepperjam
  RECONCILE_ONLY=1            # skip the sync, only recompute counters
"""

import asyncio
import json
import os
import sys


# Ensure imports work when executed as a script/module
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from affsync.services.orchestrator import SyncOrchestrator  # noqa: E402
from affsync.stores.postgres import close_db, init_db, ping_db  # noqa: E402
from affsync.stores.redis import close_redis, init_redis  # noqa: E402


async def main() -> None:
    # Initialize shared connections (same as API lifespan, but for a one-off cron run)
    await init_db()
    await ping_db()
    try:
        await init_redis()
    except Exception:
        # Cron can still run without Redis (no brand cache, no cross-process lock).
        pass

    orchestrator = SyncOrchestrator()
    try:
        network = os.getenv("SYNC_NETWORK", "").strip()
        if os.getenv("RECONCILE_ONLY", "").strip() in ("1", "true", "yes"):
            result = {"reconcile": await orchestrator.reconcile_all()}
        elif network:
            result = await orchestrator.run_network_sync(network)
        else:
            result = await orchestrator.run_full_sync()

        # Final output for Railway logs (single JSON blob)
        print(json.dumps({"ok": True, **result}, default=str))
    finally:
        await orchestrator.close()
        await close_redis()
        await close_db()


if __name__ == "__main__":
    asyncio.run(main())
