import asyncio
from contextlib import suppress
from typing import Optional

import config
from logger_config import setup_logger
from audio_share.services.audio_store import AudioStore

logger = setup_logger(__name__)


class ExpirySweeper:
    """Periodically removes entries older than the TTL from a store."""

    def __init__(self, store: AudioStore, ttl_seconds: float = config.AUDIO_TTL_SECONDS,
                 interval_seconds: float = config.SWEEP_INTERVAL_SECONDS):
        if ttl_seconds <= 0 or interval_seconds <= 0:
            raise ValueError("TTL and sweep interval must be positive")
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sweep_once(self) -> int:
        removed = await self.store.purge_expired(self.ttl_seconds)
        if removed:
            logger.info(f"Expired {removed} audio entries older than {self.ttl_seconds}s")
        return removed

    async def _run(self):
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.sweep_once()
            except Exception as e:
                # One bad sweep must not stop the next one
                logger.error(f"Expiry sweep failed: {e}", exc_info=True)

    def start(self):
        if self.running:
            return
        logger.info(f"Starting expiry sweeper (ttl={self.ttl_seconds}s, every {self.interval_seconds}s)")
        self._task = asyncio.create_task(self._run())

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        with suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Expiry sweeper stopped")
