# models/upload_models.py
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from enum import Enum

class UploadState(str, Enum):
    IDLE = "idle"
    INITIATING = "initiating"
    UPLOADING = "uploading"
    COMPLETING = "completing"
    ABORTING = "aborting"
    COMPLETED = "completed"
    FAILED = "failed"

TERMINAL_STATES = frozenset({UploadState.COMPLETED, UploadState.FAILED})

class Chunk(BaseModel):
    """One inbound stream message. Only the first one carries a file name."""
    file_name: Optional[str] = None
    payload: bytes = b""

class CompletedPart(BaseModel):
    model_config = ConfigDict(frozen=True)

    part_number: int = Field(ge=1)
    etag: str

    def to_s3(self) -> dict:
        return {"PartNumber": self.part_number, "ETag": self.etag}

class UploadSession(BaseModel):
    object_key: str
    upload_id: Optional[str] = None
    parts: List[CompletedPart] = []
    next_part_number: int = 1
    state: UploadState = UploadState.IDLE

    def record_part(self, etag: str) -> CompletedPart:
        """Append the part just uploaded under next_part_number and advance the counter."""
        part = CompletedPart(part_number=self.next_part_number, etag=etag)
        self.parts.append(part)
        self.next_part_number += 1
        return part

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

class UploadResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: str = "success"
    url: str
    file_name: str = Field(alias="fileName")

class DownloadUrlResponse(BaseModel):
    url: str
    expires_in: int
