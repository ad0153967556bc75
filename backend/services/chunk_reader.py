# services/chunk_reader.py
import logging
from typing import Optional, Protocol

from models.upload_errors import UploadError, UploadErrorKind
from models.upload_models import Chunk

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """The inbound stream could not deliver the next message."""


class ChunkTransport(Protocol):
    async def receive(self) -> Optional[Chunk]:
        """Next message in send order, or None once the sender has closed the stream."""
        ...


class ChunkStreamReader:
    """
    Lazy, finite, non-restartable view of one client's chunk stream.

    ``first()`` must be called once before iterating; iteration yields each
    later payload in order and stops at end-of-stream.
    """

    def __init__(self, transport: ChunkTransport):
        self._transport = transport
        self._started = False
        self._exhausted = False

    async def first(self) -> Chunk:
        """Read the initial message, which names the destination object."""
        if self._started:
            raise RuntimeError("initial request already consumed")
        self._started = True

        try:
            chunk = await self._transport.receive()
        except TransportError as e:
            self._exhausted = True
            raise UploadError(
                UploadErrorKind.MISSING_INITIAL_REQUEST,
                "error receiving initial request",
                cause=e,
            ) from e

        if chunk is None:
            self._exhausted = True
            raise UploadError(
                UploadErrorKind.MISSING_INITIAL_REQUEST,
                "stream closed before the initial request",
            )
        if not chunk.file_name or not chunk.file_name.strip():
            self._exhausted = True
            raise UploadError(
                UploadErrorKind.MISSING_INITIAL_REQUEST,
                "initial request has no file name",
            )
        return chunk

    async def next(self) -> Optional[bytes]:
        """Next payload, or None at end-of-stream."""
        if not self._started:
            raise RuntimeError("first() must be called before next()")
        if self._exhausted:
            return None

        try:
            chunk = await self._transport.receive()
        except TransportError as e:
            self._exhausted = True
            logger.warning(f"error in receiving chunks: {e}")
            raise UploadError(
                UploadErrorKind.STREAM_READ_FAILURE,
                "error receiving chunk",
                cause=e,
            ) from e

        if chunk is None:
            self._exhausted = True
            return None
        return chunk.payload

    def __aiter__(self):
        return self

    async def __anext__(self) -> bytes:
        payload = await self.next()
        if payload is None:
            raise StopAsyncIteration
        return payload
