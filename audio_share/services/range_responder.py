"""
Range-aware streaming of stored audio.

Audio players seek by asking for byte ranges, so ``/stream/{token}`` answers
``Range: bytes=<start>-<end>`` with ``206 Partial Content`` and everything
else with the full payload. Only the first range of a header is honoured.
"""

import re
from typing import AsyncIterator, Optional

from fastapi.responses import PlainTextResponse, Response, StreamingResponse

import config
from logger_config import setup_logger
from audio_share.errors import NotFoundOrExpired, RangeNotSatisfiable
from audio_share.services.audio_store import AudioStore, ByteRange

logger = setup_logger(__name__)

RANGE_PATTERN = re.compile(r'bytes=(\d+)-(\d*)')

# Streamed audio must never outlive its deletion in a shared cache
NO_STORE = "no-store"


def parse_range(range_header: Optional[str], total: int) -> Optional[ByteRange]:
    """
    Parse a ``Range`` header against an entry of ``total`` bytes.

    Returns None when there is no header (serve everything).

    Raises:
        RangeNotSatisfiable: if the header is malformed or falls outside the entry
    """
    if not range_header:
        return None

    match = RANGE_PATTERN.search(range_header)
    if not match:
        raise RangeNotSatisfiable()

    start = int(match.group(1))
    end = int(match.group(2)) if match.group(2) else total - 1

    if start > end or start >= total or end >= total:
        raise RangeNotSatisfiable()

    return ByteRange(start=start, end=end)


def not_found_response() -> Response:
    return PlainTextResponse(
        NotFoundOrExpired.message,
        status_code=404,
        headers={"Cache-Control": NO_STORE},
    )


def range_not_satisfiable_response(total: int) -> Response:
    return PlainTextResponse(
        RangeNotSatisfiable.message,
        status_code=416,
        headers={"Content-Range": f"bytes */{total}", "Cache-Control": NO_STORE},
    )


async def iter_chunks(data: bytes, chunk_size: int) -> AsyncIterator[bytes]:
    """Yield ``data`` in chunks. Stops as soon as the server stops pulling."""
    for offset in range(0, len(data), chunk_size):
        yield data[offset:offset + chunk_size]


async def stream_audio(store: AudioStore, token: str, range_header: Optional[str],
                       chunk_size: int = config.STREAM_CHUNK_SIZE) -> Response:
    """Build the full (200) or partial (206) response for a stored entry."""
    # Absence wins over range validity
    metadata = await store.head(token)
    if metadata is None:
        return not_found_response()

    try:
        byte_range = parse_range(range_header, metadata.size)
    except RangeNotSatisfiable:
        logger.debug(f"Unsatisfiable range {range_header!r} for {token} ({metadata.size} bytes)")
        return range_not_satisfiable_response(metadata.size)

    result = await store.get(token, byte_range)
    if result is None:
        # Deleted or expired between head and get
        return not_found_response()
    data, total = result

    content_type = metadata.content_type or config.DEFAULT_CONTENT_TYPE
    headers = {
        "Content-Length": str(len(data)),
        "Accept-Ranges": "bytes",
        "Cache-Control": NO_STORE,
    }

    if byte_range is None:
        logger.debug(f"Streaming {total} bytes of {token}")
        return StreamingResponse(
            iter_chunks(data, chunk_size),
            status_code=200,
            media_type=content_type,
            headers=headers,
        )

    if byte_range.end >= total:
        # Entry was replaced by a shorter one after the range was checked
        return range_not_satisfiable_response(total)

    headers["Content-Range"] = f"bytes {byte_range.start}-{byte_range.end}/{total}"
    logger.debug(f"Streaming bytes {byte_range.start}-{byte_range.end}/{total} of {token}")
    return StreamingResponse(
        iter_chunks(data, chunk_size),
        status_code=206,
        media_type=content_type,
        headers=headers,
    )
