# models/upload_errors.py
from enum import Enum
from typing import Optional


class UploadErrorKind(str, Enum):
    MISSING_INITIAL_REQUEST = "MissingInitialRequest"
    STREAM_READ_FAILURE = "StreamReadFailure"
    CHUNK_TOO_LARGE = "ChunkTooLarge"
    CREATE_UPLOAD_FAILED = "CreateUploadFailed"
    UPLOAD_PART_FAILED = "UploadPartFailed"
    COMPLETE_UPLOAD_FAILED = "CompleteUploadFailed"
    ABORT_UPLOAD_FAILED = "AbortUploadFailed"


class UploadError(Exception):
    """
    Terminal failure of one upload session.

    ``kind`` is what callers branch on. ``cause`` is the underlying exception,
    if any. For ``ABORT_UPLOAD_FAILED`` the error that triggered the abort is
    kept in ``original``, so both failures reach the caller.
    """

    def __init__(
        self,
        kind: UploadErrorKind,
        message: str,
        cause: Optional[BaseException] = None,
        original: Optional["UploadError"] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.cause = cause
        self.original = original

    @classmethod
    def abort_failed(cls, original: "UploadError", abort_error: BaseException) -> "UploadError":
        return cls(
            UploadErrorKind.ABORT_UPLOAD_FAILED,
            f"unable to abort multipart upload: {abort_error}",
            cause=abort_error,
            original=original,
        )

    @property
    def triggering_kind(self) -> UploadErrorKind:
        """Kind of the failure that ended the session, looking through a failed abort."""
        return self.original.kind if self.original is not None else self.kind

    def __str__(self) -> str:
        if self.original is not None:
            return f"{self.original}; {self.message} (upload may need manual cleanup)"
        if self.cause is not None:
            return f"{self.message}: {self.cause}"
        return self.message
