"""
Object store interface for uploaded audio, plus the in-memory implementation.

A store holds one immutable payload per token together with its metadata.
All implementations share the same contract:

- ``put`` makes an entry visible all at once, or not at all.
- ``head`` and ``get`` report absence as ``None``. Failures of the backing
  medium are logged and reported as absence too.
- ``delete`` never raises; deleting an absent token is a no-op. It returns
  False only when the backing medium failed to remove the entry.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Tuple

from logger_config import setup_logger
from audio_share.services.store_monitor import StoreHealthMonitor

logger = setup_logger(__name__)

Clock = Callable[[], float]


@dataclass(frozen=True)
class ByteRange:
    """Inclusive byte range ``[start, end]``."""
    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1


@dataclass(frozen=True)
class AudioMetadata:
    token: str
    content_type: str
    filename: str
    created_at: float
    size: int

    @property
    def created_at_iso(self) -> str:
        return datetime.fromtimestamp(self.created_at, tz=timezone.utc).isoformat()

    def age(self, now: float) -> float:
        return now - self.created_at


class AudioStore(ABC):
    """Async put/head/get/delete over audio payloads keyed by token."""

    backend_name = "abstract"

    def __init__(self, clock: Optional[Clock] = None, monitor: Optional[StoreHealthMonitor] = None):
        self.clock = clock or time.time
        self.monitor = monitor or StoreHealthMonitor(failure_threshold=5, name=self.backend_name)

    async def initialize(self) -> None:
        """Prepare the backing medium. Called once from the application lifespan."""

    @abstractmethod
    async def put(self, token: str, payload: bytes, content_type: str, filename: str) -> AudioMetadata:
        """
        Store a payload and its metadata atomically under token.

        Raises:
            TransientStoreError: if the backing medium failed; nothing is left visible
        """

    @abstractmethod
    async def head(self, token: str) -> Optional[AudioMetadata]:
        """Return metadata without transferring payload bytes, or None if absent."""

    @abstractmethod
    async def get(self, token: str, byte_range: Optional[ByteRange] = None) -> Optional[Tuple[bytes, int]]:
        """
        Return ``(payload_or_slice, total_size)`` or None if absent.

        ``byte_range`` must already be validated against the entry's size.
        """

    @abstractmethod
    async def delete(self, token: str) -> bool:
        """
        Remove the entry. Best-effort: never raises, absent is not an error.

        Returns False if the backing medium failed, True otherwise.
        """

    @abstractmethod
    async def purge_expired(self, ttl_seconds: float) -> int:
        """Remove every entry older than ``ttl_seconds`` and return how many were removed."""

    def _new_metadata(self, token: str, payload: bytes, content_type: str, filename: str) -> AudioMetadata:
        return AudioMetadata(
            token=token,
            content_type=content_type,
            filename=filename,
            created_at=self.clock(),
            size=len(payload),
        )


@dataclass(frozen=True)
class _MemoryEntry:
    payload: bytes
    metadata: AudioMetadata


class MemoryAudioStore(AudioStore):
    """
    Process-local store. Entries die with the process.

    Each put or delete is a single dict operation with no await in between,
    so a concurrent reader sees the whole old entry or the whole new one.
    """

    backend_name = "memory"

    def __init__(self, clock: Optional[Clock] = None, monitor: Optional[StoreHealthMonitor] = None):
        super().__init__(clock, monitor)
        self._entries: Dict[str, _MemoryEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    async def put(self, token: str, payload: bytes, content_type: str, filename: str) -> AudioMetadata:
        payload = bytes(payload)
        metadata = self._new_metadata(token, payload, content_type, filename)
        self._entries[token] = _MemoryEntry(payload=payload, metadata=metadata)
        logger.debug(f"Stored {metadata.size} bytes in memory under {token}")
        return metadata

    async def head(self, token: str) -> Optional[AudioMetadata]:
        entry = self._entries.get(token)
        return entry.metadata if entry else None

    async def get(self, token: str, byte_range: Optional[ByteRange] = None) -> Optional[Tuple[bytes, int]]:
        entry = self._entries.get(token)
        if entry is None:
            return None
        total = len(entry.payload)
        if byte_range is None:
            return entry.payload, total
        return entry.payload[byte_range.start:byte_range.end + 1], total

    async def delete(self, token: str) -> bool:
        self._entries.pop(token, None)
        return True

    async def purge_expired(self, ttl_seconds: float) -> int:
        now = self.clock()
        expired = [
            token for token, entry in list(self._entries.items())
            if entry.metadata.age(now) > ttl_seconds
        ]
        removed = 0
        for token in expired:
            # A concurrent delete may already have removed it
            if self._entries.pop(token, None) is not None:
                removed += 1
        return removed
