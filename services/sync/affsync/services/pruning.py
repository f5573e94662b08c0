"""Stale record pruning (mark and sweep).

After a pass, every stored record of (network, kind) whose key was not
touched by that pass no longer exists upstream and is deleted. This is the
only deletion path in the sync engine.

Deletes go out in bounded batches. An empty active set skips the sweep:
a pass that produced nothing (credentials missing, network outage) must not
wipe a network.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError

from affsync.services.keys import EntityKind
from affsync.services.record_store import RecordStore
from affsync.settings import get_settings

logger = logging.getLogger("uvicorn.error")


@dataclass
class PruneResult:
    """Outcome of one prune."""

    deleted: int = 0
    skipped: bool = False
    error: str | None = None


async def prune(
    store: RecordStore,
    network: str,
    kind: EntityKind,
    active_keys: Iterable[str],
    batch_size: int | None = None,
) -> PruneResult:
    """Delete stored records of (network, kind) whose key is not in active_keys.

    Errors are logged and reported in the result, never raised.
    """
    active = set(active_keys)
    if not active:
        logger.warning(f"[prune] {network} {kind.value}: no active keys, skipping")
        return PruneResult(skipped=True)

    batch_size = batch_size or get_settings().prune_batch_size
    result = PruneResult()
    try:
        stored = await store.list_keys(kind, network)
        stale = sorted(stored - active)
        for start in range(0, len(stale), batch_size):
            result.deleted += await store.delete_keys(kind, stale[start : start + batch_size])
    except (SQLAlchemyError, RuntimeError, OSError) as e:
        logger.error(f"[prune] {network} {kind.value} failed after {result.deleted} deletions: {e}")
        result.error = str(e)
        return result

    if result.deleted:
        logger.info(f"[prune] {network} {kind.value}: deleted {result.deleted} stale records")
    return result
