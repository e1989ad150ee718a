from typing import AsyncIterator, Mapping, Optional, Tuple
from urllib.parse import unquote

import config
from logger_config import setup_logger
from audio_share.errors import ClientInputError, EmptyPayload, PayloadTooLarge
from audio_share.services.audio_store import AudioStore
from audio_share.services.tokens import generate_token

logger = setup_logger(__name__)

FILENAME_HEADER = "x-filename"
MIME_HEADER = "x-mime-type"
DEFAULT_FILENAME = "audio"


def decode_filename(raw: Optional[str]) -> str:
    """Percent-decode a client supplied filename, keeping the raw string if that fails."""
    if not raw:
        return DEFAULT_FILENAME
    try:
        return unquote(raw, errors="strict") or DEFAULT_FILENAME
    except UnicodeDecodeError:
        return raw


def resolve_content_type(mime_hint: Optional[str], content_type: Optional[str]) -> str:
    return mime_hint or content_type or config.DEFAULT_CONTENT_TYPE


def describe_upload(headers: Mapping[str, str]) -> Tuple[str, str]:
    """Return ``(content_type, filename)`` for an upload from its request headers."""
    content_type = resolve_content_type(headers.get(MIME_HEADER), headers.get("content-type"))
    filename = decode_filename(headers.get(FILENAME_HEADER))
    return content_type, filename


class UploadGuard:
    """Reads an upload body while enforcing a hard size cap."""

    def __init__(self, max_bytes: int = config.MAX_AUDIO_BYTES):
        if max_bytes <= 0:
            raise ValueError("Upload limit must be positive")
        self.max_bytes = max_bytes

    def check_declared_length(self, content_length: Optional[str]):
        """Reject early when the client already announced an oversized body."""
        if content_length is None:
            return
        try:
            declared = int(content_length)
        except ValueError:
            raise ClientInputError("Invalid Content-Length header")
        if declared > self.max_bytes:
            raise PayloadTooLarge(self.max_bytes)

    async def read_capped(self, stream: AsyncIterator[bytes]) -> bytes:
        """
        Consume ``stream`` fully and return its bytes.

        Raises:
            PayloadTooLarge: as soon as more than ``max_bytes`` arrived; never truncates
            EmptyPayload: if the stream carried no bytes
        """
        chunks = []
        received = 0
        async for chunk in stream:
            if not chunk:
                continue
            received += len(chunk)
            if received > self.max_bytes:
                logger.info(f"Upload aborted after {received} bytes (limit {self.max_bytes})")
                raise PayloadTooLarge(self.max_bytes)
            chunks.append(chunk)

        if received == 0:
            raise EmptyPayload()
        return b"".join(chunks)


async def ingest_upload(store: AudioStore, guard: UploadGuard, stream: AsyncIterator[bytes],
                        headers: Mapping[str, str]) -> str:
    """Read an upload, commit it under a fresh token and return the token."""
    guard.check_declared_length(headers.get("content-length"))
    payload = await guard.read_capped(stream)
    content_type, filename = describe_upload(headers)

    token = generate_token()
    await store.put(token, payload, content_type, filename)

    logger.info(f"Stored upload {token}: {len(payload)} bytes, {content_type}")
    return token
