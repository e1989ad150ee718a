"""
Factory for creating audio store instances from configuration.
"""

from pathlib import Path
from typing import Optional

import config
from audio_share.services.audio_store import AudioStore, Clock, MemoryAudioStore
from audio_share.services.disk_store import DiskAudioStore
from audio_share.services.s3_store import S3AudioStore
from audio_share.services.store_monitor import StoreHealthMonitor


class AudioStoreFactory:
    """Factory for creating audio store instances."""

    BACKENDS = ("memory", "disk", "s3")

    @staticmethod
    def create(backend: str = None, clock: Optional[Clock] = None) -> AudioStore:
        """
        Create an audio store for the given backend name.

        Raises:
            ValueError: If the backend is not supported
        """
        backend = (backend or config.STORE_BACKEND).lower()
        monitor = StoreHealthMonitor(
            failure_threshold=config.STORE_FAILURE_THRESHOLD,
            window_seconds=config.STORE_FAILURE_WINDOW_SECONDS,
            name=backend,
        )

        if backend == "memory":
            return MemoryAudioStore(clock=clock, monitor=monitor)

        elif backend == "disk":
            return DiskAudioStore(Path(config.DATA_DIR), Path(config.TEMP_DIR), clock=clock, monitor=monitor)

        elif backend == "s3":
            return S3AudioStore(
                config.S3_BUCKET,
                key_prefix=config.S3_KEY_PREFIX,
                clock=clock,
                monitor=monitor,
                endpoint_url=config.S3_ENDPOINT_URL,
                region_name=config.S3_REGION,
                access_key_id=config.S3_ACCESS_KEY_ID,
                secret_access_key=config.S3_SECRET_ACCESS_KEY,
            )

        else:
            raise ValueError(f"Unknown store backend: {backend}")
