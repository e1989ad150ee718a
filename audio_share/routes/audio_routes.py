from typing import Optional

from fastapi import APIRouter, Header, Request
from fastapi.responses import JSONResponse, Response

from logger_config import setup_logger
from audio_share.errors import (
    AudioShareError,
    MissingToken,
    NotFoundOrExpired,
    TransientStoreError,
)
from audio_share.models.audio import CheckOut, DeleteOut, ErrorOut, HealthOut, UploadOut
from audio_share.services.ingestion import ingest_upload
from audio_share.services.range_responder import NO_STORE, not_found_response, stream_audio
from audio_share.services.tokens import is_valid_token

logger = setup_logger(__name__)

router = APIRouter()

FALLBACK_FILENAME = "Shared audio"


def json_response(model, status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        model.model_dump(by_alias=True, exclude_none=True),
        status_code=status_code,
        headers={"Cache-Control": NO_STORE},
    )


@router.post(
    "/api/upload",
    response_model=UploadOut,
    responses={400: {"model": ErrorOut}, 413: {"model": ErrorOut}, 500: {"model": ErrorOut}},
)
async def upload_audio(request: Request):
    """Store the raw request body as a new audio entry and return its token."""
    store = request.app.state.audio_store
    guard = request.app.state.upload_guard
    logger.info(f"Receiving upload request ({request.headers.get('content-length', 'unknown')} bytes declared)")

    try:
        token = await ingest_upload(store, guard, request.stream(), request.headers)
    except AudioShareError:
        raise
    except Exception as e:
        logger.error(f"Error uploading audio: {e}", exc_info=True)
        raise TransientStoreError() from e

    return json_response(UploadOut(token=token))


@router.get("/api/check", include_in_schema=False)
@router.get("/api/check/", include_in_schema=False)
async def check_without_token():
    return json_response(CheckOut(exists=False, message=NotFoundOrExpired.message), status_code=404)


@router.get("/api/check/{token}", response_model=CheckOut, responses={404: {"model": CheckOut}})
async def check_audio(token: str, request: Request):
    store = request.app.state.audio_store

    metadata = await store.head(token) if is_valid_token(token) else None
    if metadata is None:
        logger.debug(f"Check for absent token {token}")
        return json_response(CheckOut(exists=False, message=NotFoundOrExpired.message), status_code=404)

    return json_response(CheckOut(
        exists=True,
        filename=metadata.filename or FALLBACK_FILENAME,
        created_at=metadata.created_at_iso,
    ))


@router.api_route("/api/delete", methods=["DELETE", "POST"], include_in_schema=False)
@router.api_route("/api/delete/", methods=["DELETE", "POST"], include_in_schema=False)
async def delete_without_token():
    raise MissingToken()


@router.api_route(
    "/api/delete/{token}",
    methods=["DELETE", "POST"],
    response_model=DeleteOut,
    responses={400: {"model": ErrorOut}},
)
async def delete_audio(token: str, request: Request):
    """Delete an entry. Always succeeds, whether or not it existed."""
    if not token.strip():
        raise MissingToken()

    logger.info(f"Receiving delete request for token: {token}")
    # A malformed token was never issued, so there is nothing to remove
    if is_valid_token(token):
        await request.app.state.audio_store.delete(token)
    return json_response(DeleteOut(ok=True))


@router.get("/stream", include_in_schema=False)
@router.get("/stream/", include_in_schema=False)
async def stream_without_token():
    return not_found_response()


@router.get("/stream/{token}")
async def stream(token: str, request: Request, range_header: Optional[str] = Header(default=None, alias="Range")) -> Response:
    """Stream an entry, honouring ``Range: bytes=start-end``."""
    if not is_valid_token(token):
        return not_found_response()
    return await stream_audio(request.app.state.audio_store, token, range_header,
                              chunk_size=request.app.state.stream_chunk_size)


@router.get("/api/health", response_model=HealthOut)
async def health(request: Request):
    store = request.app.state.audio_store
    return json_response(HealthOut(status="ok", backend=store.backend_name, store=store.monitor.stats))
