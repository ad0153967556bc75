# services/cleanup_service.py
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi.concurrency import run_in_threadpool

from config import Settings
from services.object_store import ObjectStore, ObjectStoreError

logger = logging.getLogger(__name__)

class StaleUploadSweeper:
    """Aborts incomplete multipart uploads left behind by failed aborts or crashes."""

    def __init__(self, store: ObjectStore, settings: Settings):
        self.store = store
        self.bucket_name = settings.bucket_name
        self.prefix = settings.key_prefix
        self.max_age = timedelta(hours=settings.stale_upload_max_age_hours)
        self.interval = settings.cleanup_interval_seconds
        self.retry_delay = 60  # Wait 1 minute before retrying a failed sweep

    async def start_cleanup_scheduler(self):
        """Start the cleanup scheduler"""
        while True:
            try:
                await self.abort_stale_uploads()
                await asyncio.sleep(self.interval)
            except asyncio.CancelledError:
                logger.info("Cleanup scheduler cancelled")
                break
            except Exception as e:
                logger.error(f"Error in cleanup scheduler: {e!r}")
                try:
                    await asyncio.sleep(self.retry_delay)
                except asyncio.CancelledError:
                    logger.info("Cleanup scheduler cancelled")
                    break

    async def abort_stale_uploads(self, now: Optional[datetime] = None) -> int:
        """Abort uploads under the key prefix initiated before the age cutoff."""
        return await run_in_threadpool(self._sweep, now or datetime.now(timezone.utc))

    def _sweep(self, now: datetime) -> int:
        logger.info("Starting incomplete uploads cleanup")
        cutoff = now - self.max_age
        cleanup_count = 0

        for upload in self.store.list_multipart_uploads(self.bucket_name, self.prefix):
            initiated = upload["Initiated"]
            if initiated.tzinfo is None:
                initiated = initiated.replace(tzinfo=timezone.utc)
            if initiated >= cutoff:
                continue

            try:
                self.store.abort_multipart_upload(self.bucket_name, upload["Key"], upload["UploadId"])
            except ObjectStoreError as e:
                logger.error(f"Failed to abort upload {upload['UploadId']}: {e}")
                continue
            cleanup_count += 1
            logger.info(f"Aborted stale upload: {upload['Key']} ({upload['UploadId']})")

        logger.info(f"Cleaned up {cleanup_count} incomplete uploads")
        return cleanup_count
