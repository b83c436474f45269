"""Pull a document from a real sync server and print live updates.

Proves the full client pipeline works against a running server:
handshake, pull with an empty state vector, and the live update
subscription (or a static snapshot when WORKSPACE_SYNC_MODE=static).

Usage:
    WORKSPACE_SYNC_SERVER_URL=https://app.example.com \
        python scripts/watch_workspace.py <workspace_id> <doc_id> [seconds]
"""

from __future__ import annotations

import asyncio
import logging
import sys

from workspace_sync import (
    CleanupService,
    SyncConfig,
    SyncStorageError,
    UnsupportedOperationError,
    create_sync_storage,
)

logging.basicConfig(level=logging.INFO, format="%(levelname)s  %(message)s")
logging.getLogger("aiohttp").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


def _print_update(doc_id: str, data: bytes) -> None:
    logger.info(f"update  doc={doc_id}  bytes={len(data)}")


def _print_disconnect(reason: str) -> None:
    logger.info(f"disconnected: {reason}")


async def main(workspace_id: str, doc_id: str, seconds: float) -> int:
    config = SyncConfig.from_environment()
    cleanup = CleanupService()
    storage = create_sync_storage(workspace_id, config, cleanup)
    logger.info(f"Using {storage.name} storage for {workspace_id}")

    try:
        result = await storage.pull(doc_id)
        if result is None:
            logger.info(f"{doc_id} does not exist remotely")
        else:
            state = len(result.state) if result.state else 0
            logger.info(f"pulled  doc={doc_id}  bytes={len(result.data)}  state_bytes={state}")

        try:
            subscription = await storage.subscribe(_print_update, _print_disconnect)
        except UnsupportedOperationError:
            logger.info("Static mode: no live updates")
            return 0

        await asyncio.sleep(seconds)
        subscription.cancel()
        return 0
    except SyncStorageError as e:
        logger.error(f"Sync failed: {e}")
        return 1
    finally:
        cleanup.cleanup()
        await cleanup.wait()  # sends the leave message, then closes the channel


if __name__ == "__main__":
    if len(sys.argv) < 3:
        print(__doc__)
        sys.exit(2)
    watch_seconds = float(sys.argv[3]) if len(sys.argv) > 3 else 30.0
    sys.exit(asyncio.run(main(sys.argv[1], sys.argv[2], watch_seconds)))
