"""
Background reaper for expired items.
"""
import asyncio
import logging

from quickdrop.bundle import STALE_BUNDLE_SECONDS
from quickdrop.file_store import FileStore
from quickdrop.item_store import ItemStore

logger = logging.getLogger(__name__)


def reap_expired(store: ItemStore, files: FileStore,
                 bundle_max_age: float = STALE_BUNDLE_SECONDS) -> int:
    """
    Evict expired items and delete their files. Returns the eviction count.

    Also collects download archives whose response never completed.
    """
    stale = files.discard_stale_bundles(bundle_max_age)
    if stale:
        logger.info(f"Removed {stale} abandoned bundle(s)")

    now = store.clock()
    expired = [code for code, item in store.snapshot() if item.is_expired(now)]

    evicted = 0
    for code in expired:
        # Re-checked under the lock; a fresh upload may have taken the code
        item = store.discard_if_expired(code)
        if item is None:
            continue
        for record in item.files:
            files.remove(record)
        evicted += 1
        logger.info(f"Code {code} expired, removed {len(item.files)} file(s)")

    return evicted


async def reaper_loop(store: ItemStore, files: FileStore, interval: float = 30):
    """Sweep the store every ``interval`` seconds for the process lifetime."""
    while True:
        await asyncio.sleep(interval)
        try:
            reap_expired(store, files)
        except Exception:
            logger.exception("Reaper sweep failed")
