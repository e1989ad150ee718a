from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import uvicorn

import config
from logger_config import setup_logger
from audio_share.errors import AudioShareError
from audio_share.routes.audio_routes import router
from audio_share.services.audio_store import AudioStore, Clock
from audio_share.services.ingestion import UploadGuard
from audio_share.services.store_factory import AudioStoreFactory
from audio_share.services.sweeper import ExpirySweeper

# Logger setup
logger = setup_logger(__name__)


async def handle_audio_share_error(request: Request, exc: AudioShareError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected ({exc.status_code}): {exc.message}")
    return JSONResponse(
        {"error": exc.message},
        status_code=exc.status_code,
        headers={"Cache-Control": "no-store"},
    )


def create_app(store: Optional[AudioStore] = None,
               clock: Optional[Clock] = None,
               max_upload_bytes: int = config.MAX_AUDIO_BYTES,
               ttl_seconds: float = config.AUDIO_TTL_SECONDS,
               sweep_interval_seconds: float = config.SWEEP_INTERVAL_SECONDS,
               stream_chunk_size: int = config.STREAM_CHUNK_SIZE) -> FastAPI:
    """Build the application. Tests pass their own store, clock and limits."""
    store = store or AudioStoreFactory.create(clock=clock)
    sweeper = ExpirySweeper(store, ttl_seconds=ttl_seconds, interval_seconds=sweep_interval_seconds)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await store.initialize()
        sweeper.start()
        yield
        await sweeper.stop()

    app = FastAPI(title="Temporary Audio Share", lifespan=lifespan)
    app.state.audio_store = store
    app.state.upload_guard = UploadGuard(max_upload_bytes)
    app.state.sweeper = sweeper
    app.state.stream_chunk_size = stream_chunk_size

    app.add_exception_handler(AudioShareError, handle_audio_share_error)
    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    logger.info("Starting Temporary Audio Share server...")
    logger.info(f"Store backend: {app.state.audio_store.backend_name}")
    logger.info(f"Maximum upload size: {config.MAX_AUDIO_BYTES / (1024*1024):.2f} MB")
    logger.info(f"Audio TTL: {config.AUDIO_TTL_SECONDS}s, sweep every {config.SWEEP_INTERVAL_SECONDS}s")
    uvicorn.run(app, host=config.HOST, port=config.PORT)
