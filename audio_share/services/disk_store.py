import asyncio
import hashlib
import json
import shutil
import uuid
from pathlib import Path
from typing import Optional, Tuple

import aiofiles
import aiofiles.os

from logger_config import setup_logger
from audio_share.errors import TransientStoreError
from audio_share.services.audio_store import AudioMetadata, AudioStore, ByteRange, Clock
from audio_share.services.store_monitor import StoreHealthMonitor

logger = setup_logger(__name__)

BLOB_NAME = "audio.blob"
META_NAME = "audio.meta"


class DiskAudioStore(AudioStore):
    """
    Filesystem store. Each token owns one directory holding the payload and a
    JSON metadata file.

    The directory is assembled in the temp area and renamed into place, and
    removed by renaming it back out first, so a token directory under the
    data area is always either complete or absent.
    """

    backend_name = "disk"

    def __init__(self, data_dir: Path, temp_dir: Path, clock: Optional[Clock] = None,
                 monitor: Optional[StoreHealthMonitor] = None):
        super().__init__(clock, monitor)
        self.data_dir = Path(data_dir)
        self.temp_dir = Path(temp_dir)

    async def initialize(self):
        """Create the storage directories and clear leftovers from a previous run."""
        logger.info("Initializing disk audio store...")

        self.data_dir.mkdir(exist_ok=True, parents=True)
        self.temp_dir.mkdir(exist_ok=True, parents=True)
        logger.debug(f"Storage directories created/verified: {self.data_dir}, {self.temp_dir}")

        removed = 0
        for leftover in self.temp_dir.glob("*"):
            await self._remove_tree(leftover)
            removed += 1
        logger.info(f"Cleaned temporary directory, removed {removed} entries")

        existing = sum(1 for _ in self.data_dir.glob(f"*/*/{BLOB_NAME}"))
        logger.info(f"Found {existing} stored audio entries in {self.data_dir}")

    def get_entry_dir(self, token: str) -> Path:
        """Get the directory an entry lives in, based on its token."""
        # Use first 2 chars of MD5 hash as fan-out directory name
        hash_prefix = hashlib.md5(token.encode()).hexdigest()[:2]
        return self.data_dir / hash_prefix / token

    def _temp_path(self, token: str, purpose: str) -> Path:
        return self.temp_dir / f"{token}_{purpose}_{uuid.uuid4().hex}"

    async def _remove_tree(self, path: Path):
        if path.is_dir():
            await asyncio.to_thread(shutil.rmtree, path, ignore_errors=True)
        elif await aiofiles.os.path.exists(path):
            await aiofiles.os.unlink(path)

    async def put(self, token: str, payload: bytes, content_type: str, filename: str) -> AudioMetadata:
        metadata = self._new_metadata(token, payload, content_type, filename)
        entry_dir = self.get_entry_dir(token)
        staging_dir = self._temp_path(token, "upload")

        try:
            await aiofiles.os.makedirs(staging_dir, exist_ok=True)
            async with aiofiles.open(staging_dir / BLOB_NAME, 'wb') as f:
                await f.write(payload)
            async with aiofiles.open(staging_dir / META_NAME, 'w') as f:
                await f.write(json.dumps({
                    "content_type": metadata.content_type,
                    "filename": metadata.filename,
                    "created_at": metadata.created_at,
                }))

            await aiofiles.os.makedirs(entry_dir.parent, exist_ok=True)
            if await aiofiles.os.path.exists(entry_dir):
                # Last write wins: move the old entry out before the new one goes in
                replaced_dir = self._temp_path(token, "replaced")
                await aiofiles.os.rename(entry_dir, replaced_dir)
                await self._remove_tree(replaced_dir)
            await aiofiles.os.rename(staging_dir, entry_dir)
        except OSError as e:
            logger.error(f"Error storing audio {token}: {e}", exc_info=True)
            self.monitor.fail("put")
            await self._remove_tree(staging_dir)
            raise TransientStoreError() from e

        self.monitor.pass_()
        logger.debug(f"Stored {metadata.size} bytes on disk under {token}")
        return metadata

    async def _read_metadata(self, token: str, entry_dir: Path) -> Optional[AudioMetadata]:
        async with aiofiles.open(entry_dir / META_NAME, 'r') as f:
            raw = json.loads(await f.read())
        stat = await aiofiles.os.stat(entry_dir / BLOB_NAME)
        return AudioMetadata(
            token=token,
            content_type=raw.get("content_type") or "",
            filename=raw.get("filename") or "",
            created_at=float(raw.get("created_at", 0)),
            size=stat.st_size,
        )

    async def head(self, token: str) -> Optional[AudioMetadata]:
        try:
            metadata = await self._read_metadata(token, self.get_entry_dir(token))
        except (FileNotFoundError, NotADirectoryError):
            return None
        except (OSError, ValueError) as e:
            logger.error(f"Error reading metadata for {token}: {e}")
            self.monitor.fail("head")
            return None
        self.monitor.pass_()
        return metadata

    async def get(self, token: str, byte_range: Optional[ByteRange] = None) -> Optional[Tuple[bytes, int]]:
        blob_path = self.get_entry_dir(token) / BLOB_NAME
        try:
            # Size and bytes both come from the same open handle, so a delete
            # racing this read cannot mix two versions
            async with aiofiles.open(blob_path, 'rb') as f:
                await f.seek(0, 2)
                total = await f.tell()
                if byte_range is None:
                    await f.seek(0)
                    data = await f.read()
                else:
                    await f.seek(byte_range.start)
                    data = await f.read(byte_range.length)
        except (FileNotFoundError, NotADirectoryError):
            return None
        except OSError as e:
            logger.error(f"Error reading audio {token}: {e}")
            self.monitor.fail("get")
            return None
        self.monitor.pass_()
        return data, total

    async def delete(self, token: str) -> bool:
        entry_dir = self.get_entry_dir(token)
        doomed_dir = self._temp_path(token, "deleted")
        try:
            await aiofiles.os.rename(entry_dir, doomed_dir)
        except (FileNotFoundError, NotADirectoryError):
            return True
        except OSError as e:
            logger.warning(f"Best-effort delete of {token} failed: {e}")
            self.monitor.fail("delete")
            return False
        # Once renamed out the entry is gone; leftovers are cleared on next startup
        await self._remove_tree(doomed_dir)
        self.monitor.pass_()
        return True

    async def _entry_created_at(self, token: str, entry_dir: Path) -> Optional[float]:
        metadata = await self.head(token)
        if metadata is not None:
            return metadata.created_at
        # Unreadable metadata: fall back to when the blob (or directory) was written
        for path in (entry_dir / BLOB_NAME, entry_dir):
            try:
                return (await aiofiles.os.stat(path)).st_mtime
            except OSError:
                continue
        return None

    async def purge_expired(self, ttl_seconds: float) -> int:
        now = self.clock()
        removed = 0
        for entry_dir in list(self.data_dir.glob("*/*")):
            if not entry_dir.is_dir():
                continue
            token = entry_dir.name
            if self.get_entry_dir(token) != entry_dir:
                continue
            created_at = await self._entry_created_at(token, entry_dir)
            if created_at is None or now - created_at <= ttl_seconds:
                continue
            if await self.delete(token):
                removed += 1
        return removed
