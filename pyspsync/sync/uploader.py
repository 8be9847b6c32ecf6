"""Sequential file uploads for a sync run."""

import asyncio
import logging
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Callable, Optional, Sequence

import aiofiles

from ..api import GraphClient
from ..exceptions import LockedError, SpSyncError
from ..retry import RetryExecutor, SleepFunc, upload_policy
from ..utils import UPLOAD_READ_SIZE, detect_mime_type
from .folders import FolderPathCache
from .report import ReportAggregator, UploadOutcome
from .scanner import SourceEntry

logger = logging.getLogger(__name__)

# progress_callback(index, total, entry, outcome)
ProgressCallback = Callable[[int, int, SourceEntry, UploadOutcome], None]


async def read_file_chunks(
    path: Path, chunk_size: int = UPLOAD_READ_SIZE
) -> AsyncIterator[bytes]:
    """Stream a file's bytes without blocking the event loop."""
    async with aiofiles.open(path, "rb") as f:
        while True:
            chunk = await f.read(chunk_size)
            if not chunk:
                break
            yield chunk


class FileUploadOrchestrator:
    """Uploads scanned files one at a time.

    Files are uploaded sequentially to keep the load on the (rate-limited)
    service bounded and the retry accounting per file. A failed file never
    stops the run; its outcome is recorded and the next file is uploaded.
    """

    def __init__(
        self,
        client: GraphClient,
        report: ReportAggregator,
        executor: Optional[RetryExecutor] = None,
        sleep: SleepFunc = asyncio.sleep,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        """Initialize the orchestrator.

        Args:
            client: Graph API client
            report: Report of the current run
            executor: Retry executor for uploads (upload policy by default)
            sleep: Coroutine used for the inter-request delay (seconds)
            progress_callback: Called after each file with its outcome
        """
        self.client = client
        self.report = report
        self.executor = executor or RetryExecutor(upload_policy())
        self._sleep = sleep
        self.progress_callback = progress_callback

    async def upload(
        self,
        drive_id: str,
        cache: FolderPathCache,
        files: Sequence[SourceEntry],
        delay_ms: int = 0,
    ) -> None:
        """Upload every file, sleeping ``delay_ms`` after each one.

        Args:
            drive_id: Destination drive
            cache: Folder ids built by the FolderHierarchyBuilder
            files: Files to upload, in scan order
            delay_ms: Pause after every file, success or failure
        """
        total = len(files)
        for index, entry in enumerate(files, start=1):
            outcome = await self.upload_file(drive_id, cache, entry)
            if self.progress_callback:
                self.progress_callback(index, total, entry, outcome)
            await self._sleep(delay_ms / 1000)

    async def upload_file(
        self, drive_id: str, cache: FolderPathCache, entry: SourceEntry
    ) -> UploadOutcome:
        """Upload a single file and record its outcome in the report."""
        folder_id, tail = cache.resolve(entry.relative_path)
        content_type = detect_mime_type(entry.path)

        async def _attempt() -> None:
            # A stream cannot be replayed, so every attempt opens the file again
            logger.debug(f"Uploading {entry.path} with mime type {content_type}")
            try:
                await self.client.put_content(
                    drive_id,
                    folder_id,
                    tail,
                    read_file_chunks(entry.path),
                    content_type,
                )
            except LockedError:
                self.report.record_locked()
                raise
            logger.debug(f"File {entry.path} uploaded successfully.")

        try:
            await self.executor.run(_attempt, str(entry.path))
        except (SpSyncError, OSError) as e:
            logger.warning(f"Failed to upload file {entry.path}: {e}")
            outcome = (
                UploadOutcome.LOCKED if isinstance(e, LockedError) else UploadOutcome.FAILED
            )
            self.report.record_outcome(
                outcome, entry.relative_path, str(entry.path), reason=str(e)
            )
            return outcome

        self.report.record_outcome(
            UploadOutcome.UPLOADED, entry.relative_path, str(entry.path)
        )
        return UploadOutcome.UPLOADED
