import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Query, WebSocket, status
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from starlette.websockets import WebSocketState

from config import Settings
from logging_config import setup_logging
from models.upload_errors import UploadError, UploadErrorKind
from models.upload_models import DownloadUrlResponse
from services.chunk_reader import ChunkStreamReader
from services.cleanup_service import StaleUploadSweeper
from services.object_store import ObjectStore, ObjectStoreError, S3ObjectStore
from services.upload_service import UploadService
from services.websocket_transport import WebSocketChunkTransport

logger = logging.getLogger(__name__)

# WebSocket close reasons are limited to 123 bytes
MAX_CLOSE_REASON = 123

CLOSE_CODES = {
    UploadErrorKind.MISSING_INITIAL_REQUEST: status.WS_1008_POLICY_VIOLATION,
    UploadErrorKind.STREAM_READ_FAILURE: status.WS_1002_PROTOCOL_ERROR,
    UploadErrorKind.CHUNK_TOO_LARGE: status.WS_1009_MESSAGE_TOO_BIG,
}


def close_frame_for(err: UploadError):
    code = CLOSE_CODES.get(err.kind, status.WS_1011_INTERNAL_ERROR)
    reason = f"{err.kind.value}: {err}"
    encoded = reason.encode("utf-8")
    if len(encoded) > MAX_CLOSE_REASON:
        reason = encoded[:MAX_CLOSE_REASON].decode("utf-8", errors="ignore")
    return code, reason


def create_app(settings: Optional[Settings] = None, store: Optional[ObjectStore] = None) -> FastAPI:
    settings = settings or Settings()
    store = store or S3ObjectStore.from_settings(settings)
    upload_service = UploadService(store, settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        cleanup_task = None
        if settings.cleanup_enabled:
            sweeper = StaleUploadSweeper(store, settings)
            cleanup_task = asyncio.create_task(sweeper.start_cleanup_scheduler())

        yield

        # Shutdown
        if cleanup_task is not None:
            cleanup_task.cancel()
            try:
                await cleanup_task
            except asyncio.CancelledError:
                pass

    app = FastAPI(title="Video Upload Stream Service", lifespan=lifespan)

    # CORS Configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.upload_service = upload_service

    @app.websocket("/upload/stream")
    async def upload_stream(websocket: WebSocket):
        """Receive a file as a stream of chunks and assemble it with a multipart upload"""
        await websocket.accept()
        transport = WebSocketChunkTransport(websocket, idle_timeout=settings.stream_idle_timeout)
        reader = ChunkStreamReader(transport)

        try:
            response = await upload_service.upload(reader)
        except UploadError as err:
            code, reason = close_frame_for(err)
            logger.warning(f"upload failed ({err.triggering_kind.value}): {err}")
            # A client that hung up cannot receive a close frame
            if websocket.client_state == WebSocketState.CONNECTED:
                await websocket.close(code=code, reason=reason)
            return

        await websocket.send_json(response.model_dump(by_alias=True))
        await websocket.close()

    @app.get("/upload/download-url", response_model=DownloadUrlResponse)
    async def get_download_url(key: str = Query(..., min_length=1)):
        """Generate a presigned URL for downloading a finished object"""
        expires_in = settings.download_url_expires
        try:
            url = await run_in_threadpool(store.generate_download_url, settings.bucket_name, key, expires_in)
        except ObjectStoreError as e:
            raise HTTPException(status_code=502, detail=str(e))
        return DownloadUrlResponse(url=url, expires_in=expires_in)

    return app


def run():
    settings = Settings()
    setup_logging(settings.app_env)
    logger.info(f"VIDEO SERVER starting on {settings.app_host}:{settings.app_port}")
    uvicorn.run(
        "main:create_app",
        factory=True,
        host=settings.app_host,
        port=settings.app_port,
        ws_max_size=settings.max_message_size,
    )


if __name__ == "__main__":
    run()
