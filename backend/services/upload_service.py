# services/upload_service.py
import logging

from fastapi.concurrency import run_in_threadpool

from config import Settings
from models.upload_errors import UploadError, UploadErrorKind
from models.upload_models import UploadResponse, UploadSession, UploadState
from services.chunk_reader import ChunkStreamReader
from services.object_store import ObjectStore, ObjectStoreError, build_object_url, object_key_for

logger = logging.getLogger(__name__)

class UploadService:
    """
    Turns one inbound chunk stream into one multipart upload.

    Every call to ``upload`` owns its own UploadSession; the store handle is
    the only thing shared between concurrent sessions. Parts are uploaded
    strictly in arrival order and any failure after the upload was created
    aborts it exactly once.
    """

    def __init__(self, store: ObjectStore, settings: Settings):
        self.store = store
        self.settings = settings
        self.bucket_name = settings.bucket_name

    async def upload(self, reader: ChunkStreamReader) -> UploadResponse:
        """Drive a session to completion. Raises UploadError on any failure."""
        first = await reader.first()

        object_key = object_key_for(self.settings.key_prefix, first.file_name)
        if not object_key:
            raise UploadError(
                UploadErrorKind.MISSING_INITIAL_REQUEST,
                f"file name {first.file_name!r} does not form a valid object key",
            )

        session = UploadSession(object_key=object_key)
        await self._initiate(session)

        try:
            # The initial message may carry data as well as the file name
            if first.payload:
                await self._upload_chunk(session, first.payload)
            async for payload in reader:
                await self._upload_chunk(session, payload)
            logger.info(f"end of the file for {session.object_key} after {len(session.parts)} parts")

            await self._complete(session)
        except UploadError as err:
            await self._abort(session, err)
            raise
        finally:
            if session.is_terminal:
                logger.info(f"upload {session.upload_id} for {session.object_key} ended {session.state.value}")
            else:
                # Interrupted by something other than an UploadError, e.g. cancellation
                logger.error(
                    f"upload {session.upload_id} for {session.object_key} interrupted while "
                    f"{session.state.value}; it may need manual cleanup"
                )

        url = build_object_url(self.settings, session.object_key)
        logger.info(f"Successfully uploaded {session.object_key}")
        return UploadResponse(url=url, file_name=first.file_name)

    async def _initiate(self, session: UploadSession):
        session.state = UploadState.INITIATING
        try:
            session.upload_id = await run_in_threadpool(
                self.store.create_multipart_upload,
                self.bucket_name,
                session.object_key,
                self.settings.content_type,
            )
        except ObjectStoreError as e:
            # Nothing exists remotely yet, so there is nothing to abort
            session.state = UploadState.FAILED
            logger.warning(f"unable to create multipart upload for {session.object_key}: {e}")
            raise UploadError(
                UploadErrorKind.CREATE_UPLOAD_FAILED,
                "unable to create multipart upload",
                cause=e,
            ) from e

        session.state = UploadState.UPLOADING
        logger.info(f"UploadID {session.upload_id} created for {session.object_key}")

    async def _upload_chunk(self, session: UploadSession, payload: bytes):
        max_size = self.settings.max_chunk_size
        if len(payload) > max_size:
            logger.warning(
                f"chunk size exceeded for {session.object_key}: "
                f"{len(payload)} bytes > {max_size} (part {session.next_part_number})"
            )
            raise UploadError(
                UploadErrorKind.CHUNK_TOO_LARGE,
                f"chunk of {len(payload)} bytes exceeds maximum allowed size of {max_size} bytes",
            )

        part_number = session.next_part_number
        try:
            etag = await run_in_threadpool(
                self.store.upload_part,
                self.bucket_name,
                session.object_key,
                session.upload_id,
                part_number,
                payload,
            )
        except ObjectStoreError as e:
            logger.warning(f"unable to upload part {part_number} of {session.object_key}: {e}")
            raise UploadError(
                UploadErrorKind.UPLOAD_PART_FAILED,
                f"unable to upload part {part_number}",
                cause=e,
            ) from e

        session.record_part(etag)
        logger.debug(f"part {part_number} uploaded (etag={etag})")

    async def _complete(self, session: UploadSession):
        session.state = UploadState.COMPLETING
        parts = [part.to_s3() for part in session.parts]
        try:
            await run_in_threadpool(
                self.store.complete_multipart_upload,
                self.bucket_name,
                session.object_key,
                session.upload_id,
                parts,
            )
        except ObjectStoreError as e:
            logger.warning(f"unable to complete multipart upload {session.upload_id}: {e}")
            raise UploadError(
                UploadErrorKind.COMPLETE_UPLOAD_FAILED,
                "unable to complete multipart upload",
                cause=e,
            ) from e
        session.state = UploadState.COMPLETED

    async def _abort(self, session: UploadSession, err: UploadError):
        """Abort the remote upload once. Raises the compound error if that fails too."""
        session.state = UploadState.ABORTING
        try:
            await run_in_threadpool(
                self.store.abort_multipart_upload,
                self.bucket_name,
                session.object_key,
                session.upload_id,
            )
        except ObjectStoreError as abort_err:
            session.state = UploadState.FAILED
            logger.error(
                f"unable to abort multipart upload {session.upload_id} for {session.object_key} "
                f"after {err.kind.value}: {abort_err}"
            )
            raise UploadError.abort_failed(err, abort_err) from abort_err

        session.state = UploadState.FAILED
        logger.warning(f"multipart upload {session.upload_id} aborted after {err.kind.value}")
