"""Sync engine: mirrors a local tree into a Graph drive folder."""

import asyncio
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from ..api import GraphClient
from ..exceptions import NoContentError, SyncAbortedError
from ..retry import RetryExecutor, RetryPolicy, SleepFunc, upload_policy
from .folders import FolderHierarchyBuilder, FolderPathCache
from .report import ReportAggregator, SyncReport
from .scanner import DirectoryTreeScanner, SourceStructure
from .uploader import FileUploadOrchestrator, ProgressCallback

logger = logging.getLogger(__name__)

SOME_UPLOADS_FAILED = (
    "Upload Error: Some uploads failed. Check the logs for more details."
)


@dataclass(frozen=True)
class RemoteLocation:
    """Destination root of a sync run."""

    drive_id: str
    folder_id: str


class SyncEngine:
    """Runs scan, folder creation, upload and reporting for one source tree.

    Each call to :meth:`sync` owns a fresh report and folder cache, so one
    engine can be reused for several runs (one at a time).
    """

    def __init__(
        self,
        client: GraphClient,
        policy: Optional[RetryPolicy] = None,
        sleep: SleepFunc = asyncio.sleep,
        scanner: Optional[DirectoryTreeScanner] = None,
    ):
        """Initialize sync engine.

        Args:
            client: Graph API client
            policy: Retry policy for remote calls (upload policy by default)
            sleep: Coroutine used for delays and backoff (seconds)
            scanner: Directory scanner (a default one if not provided)
        """
        self.client = client
        self.policy = policy or upload_policy()
        self._sleep = sleep
        self.scanner = scanner or DirectoryTreeScanner()
        self.cache: Optional[FolderPathCache] = None

    async def sync(
        self,
        source: Union[str, Path],
        location: RemoteLocation,
        delay_ms: int = 0,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> SyncReport:
        """Mirror ``source`` into ``location``.

        A report is always returned. Errors that abort the run (empty
        source, folder creation failures, unexpected errors) end up in
        ``error_message``; individual file failures are listed in the
        report and the run continues past them.

        Args:
            source: Local directory to upload
            location: Destination drive and folder
            delay_ms: Pause between remote requests, in milliseconds
            progress_callback: Called after each file upload

        Returns:
            SyncReport for the run

        Examples:
            >>> engine = SyncEngine(client)
            >>> report = await engine.sync(Path("docx"), RemoteLocation(d, f), 500)
            >>> print(f"Uploaded {report.uploaded_count} files")
        """
        report = ReportAggregator()
        executor = RetryExecutor(self.policy, sleep=self._sleep)
        self.cache = None

        logger.info(
            f"Upload files from {source} with a delay of {delay_ms} milliseconds "
            "between uploads."
        )

        try:
            structure = self.scanner.scan(source)
            await self._run(
                structure, location, delay_ms, report, executor, progress_callback
            )
            if report.failed_count > 0:
                report.set_error(SOME_UPLOADS_FAILED)
        except (NoContentError, SyncAbortedError) as e:
            logger.warning(f"Failed to upload the files: {e}")
            report.set_error(f"Upload Error: {e}")
        except Exception as e:
            logger.error(f"Unexpected error during upload: {e}", exc_info=True)
            report.set_error(f"Upload Error: {e}")

        result = report.build()
        logger.info(f"Upload report: {json.dumps(result.to_dict())}")
        return result

    async def _run(
        self,
        structure: SourceStructure,
        location: RemoteLocation,
        delay_ms: int,
        report: ReportAggregator,
        executor: RetryExecutor,
        progress_callback: Optional[ProgressCallback],
    ) -> None:
        logger.info(f"Creating {len(structure.folders)} folders, if necessary.")
        builder = FolderHierarchyBuilder(
            self.client, report, executor=executor, sleep=self._sleep
        )
        self.cache = await builder.build(
            location.drive_id, location.folder_id, structure.folder_paths, delay_ms
        )

        logger.info(f"Uploading {len(structure.files)} files.")
        uploader = FileUploadOrchestrator(
            self.client,
            report,
            executor=executor,
            sleep=self._sleep,
            progress_callback=progress_callback,
        )
        await uploader.upload(location.drive_id, self.cache, structure.files, delay_ms)
