"""
S3-compatible bucket store (Cloudflare R2, MinIO, AWS S3).

One object per token under a key prefix. The content type travels as the
object's ``ContentType``; filename and creation time travel as user metadata.
S3 user metadata must be ASCII, so the filename is stored percent-encoded.
"""

import asyncio
import re
from typing import Any, Optional, Tuple
from urllib.parse import quote, unquote

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from logger_config import setup_logger
from audio_share.errors import TransientStoreError
from audio_share.services.audio_store import AudioMetadata, AudioStore, ByteRange, Clock
from audio_share.services.store_monitor import StoreHealthMonitor

logger = setup_logger(__name__)

NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}
CONTENT_RANGE_TOTAL = re.compile(r'/(\d+)$')


def _is_not_found(error: ClientError) -> bool:
    return str(error.response.get("Error", {}).get("Code")) in NOT_FOUND_CODES


class S3AudioStore(AudioStore):
    backend_name = "s3"

    def __init__(self, bucket_name: str, s3_client: Any = None, key_prefix: str = "audio/",
                 clock: Optional[Clock] = None, monitor: Optional[StoreHealthMonitor] = None,
                 endpoint_url: Optional[str] = None, region_name: str = "auto",
                 access_key_id: Optional[str] = None, secret_access_key: Optional[str] = None):
        super().__init__(clock, monitor)
        if not bucket_name:
            raise ValueError("S3 bucket name is required")
        self.bucket_name = bucket_name
        self.key_prefix = key_prefix
        self.s3_client = s3_client or boto3.client(
            's3',
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            region_name=region_name,
        )

    def _key(self, token: str) -> str:
        return f"{self.key_prefix}{token}"

    async def initialize(self):
        logger.info(f"Using S3 bucket {self.bucket_name} with prefix {self.key_prefix!r}")
        try:
            await asyncio.to_thread(self.s3_client.head_bucket, Bucket=self.bucket_name)
        except (ClientError, BotoCoreError) as e:
            # Not fatal: the bucket may forbid HeadBucket while allowing object access
            logger.warning(f"Could not verify bucket {self.bucket_name}: {e}")

    async def put(self, token: str, payload: bytes, content_type: str, filename: str) -> AudioMetadata:
        metadata = self._new_metadata(token, payload, content_type, filename)
        try:
            await asyncio.to_thread(
                self.s3_client.put_object,
                Bucket=self.bucket_name,
                Key=self._key(token),
                Body=payload,
                ContentType=content_type,
                Metadata={
                    "filename": quote(filename, safe=""),
                    "created-at": repr(metadata.created_at),
                },
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error storing audio {token} in bucket: {e}")
            self.monitor.fail("put")
            raise TransientStoreError() from e

        self.monitor.pass_()
        logger.debug(f"Stored {metadata.size} bytes in bucket under {token}")
        return metadata

    async def head(self, token: str) -> Optional[AudioMetadata]:
        try:
            response = await asyncio.to_thread(
                self.s3_client.head_object, Bucket=self.bucket_name, Key=self._key(token)
            )
        except ClientError as e:
            if _is_not_found(e):
                return None
            logger.error(f"Error reading metadata for {token}: {e}")
            self.monitor.fail("head")
            return None
        except BotoCoreError as e:
            logger.error(f"Error reading metadata for {token}: {e}")
            self.monitor.fail("head")
            return None

        self.monitor.pass_()
        user_metadata = response.get("Metadata") or {}
        try:
            created_at = float(user_metadata.get("created-at", ""))
        except ValueError:
            last_modified = response.get("LastModified")
            created_at = last_modified.timestamp() if last_modified else 0.0
        return AudioMetadata(
            token=token,
            content_type=response.get("ContentType") or "",
            filename=unquote(user_metadata.get("filename", "")),
            created_at=created_at,
            size=int(response["ContentLength"]),
        )

    def _read_object(self, token: str, byte_range: Optional[ByteRange]) -> Tuple[bytes, int]:
        kwargs = {"Bucket": self.bucket_name, "Key": self._key(token)}
        if byte_range is not None:
            kwargs["Range"] = f"bytes={byte_range.start}-{byte_range.end}"
        response = self.s3_client.get_object(**kwargs)
        body = response["Body"]
        try:
            data = body.read()
        finally:
            body.close()

        total = len(data)
        content_range = response.get("ContentRange")
        if content_range:
            match = CONTENT_RANGE_TOTAL.search(content_range)
            if match:
                total = int(match.group(1))
        return data, total

    async def get(self, token: str, byte_range: Optional[ByteRange] = None) -> Optional[Tuple[bytes, int]]:
        try:
            result = await asyncio.to_thread(self._read_object, token, byte_range)
        except ClientError as e:
            if _is_not_found(e):
                return None
            logger.error(f"Error reading audio {token}: {e}")
            self.monitor.fail("get")
            return None
        except BotoCoreError as e:
            logger.error(f"Error reading audio {token}: {e}")
            self.monitor.fail("get")
            return None
        self.monitor.pass_()
        return result

    async def delete(self, token: str) -> bool:
        try:
            await asyncio.to_thread(
                self.s3_client.delete_object, Bucket=self.bucket_name, Key=self._key(token)
            )
        except (ClientError, BotoCoreError) as e:
            logger.warning(f"Best-effort delete of {token} failed: {e}")
            self.monitor.fail("delete")
            return False
        self.monitor.pass_()
        return True

    def _list_expired_keys(self, cutoff: float):
        expired = []
        paginator = self.s3_client.get_paginator('list_objects_v2')
        for page in paginator.paginate(Bucket=self.bucket_name, Prefix=self.key_prefix):
            for obj in page.get('Contents', []):
                if obj['LastModified'].timestamp() < cutoff:
                    expired.append(obj['Key'])
        return expired

    async def purge_expired(self, ttl_seconds: float) -> int:
        cutoff = self.clock() - ttl_seconds
        try:
            keys = await asyncio.to_thread(self._list_expired_keys, cutoff)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error listing bucket {self.bucket_name} for expiry: {e}")
            self.monitor.fail("list")
            return 0

        removed = 0
        for key in keys:
            if await self.delete(key[len(self.key_prefix):]):
                removed += 1
        if removed < len(keys):
            logger.warning(f"Expiry sweep left {len(keys) - removed} of {len(keys)} expired objects in place")
        return removed
