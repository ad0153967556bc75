import itertools
from typing import Dict, List, Optional, Set

import pytest

from config import Settings
from models.upload_models import Chunk
from services.chunk_reader import TransportError
from services.object_store import ObjectStoreError

MAX_CHUNK = 8


@pytest.fixture
def anyio_backend():
    # Only asyncio, no trio needed
    return "asyncio"


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        bucket_name="videos",
        aws_region="eu-west-1",
        max_chunk_size=MAX_CHUNK,
        cleanup_enabled=False,
        app_env="TEST",
    )


class FakeObjectStore:
    """In-memory ObjectStore that records every call and fails on request."""

    _ids = itertools.count(1)

    def __init__(self, fail_on: Optional[Set[str]] = None, fail_part: Optional[int] = None):
        self.fail_on = fail_on or set()
        self.fail_part = fail_part
        self.calls: List[tuple] = []
        self.completed: Dict[str, List[dict]] = {}
        self.uploads: List[dict] = []

    def _maybe_fail(self, operation: str):
        if operation in self.fail_on:
            raise ObjectStoreError(operation, f"{operation} boom", code="InternalError")

    def create_multipart_upload(self, bucket, key, content_type):
        self.calls.append(("create", bucket, key, content_type))
        self._maybe_fail("create")
        return f"upload-{next(self._ids)}"

    def upload_part(self, bucket, key, upload_id, part_number, body):
        self.calls.append(("upload_part", upload_id, part_number, bytes(body)))
        if part_number == self.fail_part:
            raise ObjectStoreError("UploadPart", f"part {part_number} rejected", code="SlowDown")
        return f'"etag-{bytes(body).decode()}"'

    def complete_multipart_upload(self, bucket, key, upload_id, parts):
        self.calls.append(("complete", upload_id, list(parts)))
        self._maybe_fail("complete")
        self.completed[upload_id] = list(parts)

    def abort_multipart_upload(self, bucket, key, upload_id):
        self.calls.append(("abort", key, upload_id))
        self._maybe_fail("abort")

    def list_multipart_uploads(self, bucket, prefix=""):
        self.calls.append(("list", bucket, prefix))
        self._maybe_fail("list")
        return iter([u for u in self.uploads if u["Key"].startswith(prefix)])

    def generate_download_url(self, bucket, key, expires_in):
        self._maybe_fail("presign")
        return f"https://{bucket}.example/{key}?expires={expires_in}"

    def ops(self) -> List[str]:
        return [call[0] for call in self.calls]


class ListTransport:
    """ChunkTransport over a prepared list; an Exception item is raised when reached."""

    def __init__(self, messages):
        self._messages = list(messages)
        self.received = 0

    async def receive(self):
        if not self._messages:
            return None
        item = self._messages.pop(0)
        self.received += 1
        if isinstance(item, Exception):
            raise item
        return item


def stream(file_name, *payloads, error: Optional[str] = None):
    messages = [Chunk(file_name=file_name)]
    messages.extend(Chunk(payload=p) for p in payloads)
    if error:
        messages.append(TransportError(error))
    return ListTransport(messages)


@pytest.fixture
def store():
    return FakeObjectStore()


class UnreachableStore(FakeObjectStore):
    """Listing fails with a low-level socket error instead of an ObjectStoreError."""

    def list_multipart_uploads(self, bucket, prefix=""):
        self.calls.append(("list", bucket, prefix))
        raise ConnectionResetError("socket closed mid-page")
