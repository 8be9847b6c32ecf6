"""Creation of the remote folder hierarchy for a sync run."""

import asyncio
import logging
from typing import Any, Iterable, Optional

from ..api import GraphClient
from ..exceptions import (
    ConflictError,
    FolderCreationError,
    FolderResolutionError,
    SpSyncError,
)
from ..retry import RetryExecutor, SleepFunc, upload_policy
from ..utils import split_remote_path
from .report import ReportAggregator

logger = logging.getLogger(__name__)


class FolderPathCache:
    """Maps relative folder paths to remote item ids for one sync run.

    The root is stored under the empty path. A path is only ever added
    after its parent, so every prefix of a cached path is cached too.
    """

    def __init__(self, root_id: str):
        self._ids: dict[str, str] = {"": root_id}

    @property
    def root_id(self) -> str:
        return self._ids[""]

    def __contains__(self, path: str) -> bool:
        return path in self._ids

    def get(self, path: str) -> Optional[str]:
        return self._ids.get(path)

    def add(self, path: str, item_id: str) -> None:
        """Cache ``item_id`` for ``path``.

        Raises:
            ValueError: If the parent of ``path`` is not cached yet
        """
        parent, _, _ = path.rpartition("/")
        if parent not in self._ids:
            raise ValueError(f"Parent folder '{parent}' of '{path}' is not cached")
        self._ids[path] = item_id

    def resolve(self, relative_file_path: str) -> tuple[str, str]:
        """Find the deepest cached folder containing a file.

        Args:
            relative_file_path: File path relative to the sync root

        Returns:
            Tuple of (folder id, path of the file below that folder)

        Examples:
            >>> cache = FolderPathCache("root")
            >>> cache.add("a", "id-a")
            >>> cache.resolve("a/b/two.txt")
            ('id-a', 'b/two.txt')
        """
        segments = split_remote_path(relative_file_path)
        for depth in range(len(segments) - 1, 0, -1):
            folder_id = self._ids.get("/".join(segments[:depth]))
            if folder_id is not None:
                return folder_id, "/".join(segments[depth:])
        return self.root_id, "/".join(segments)

    def as_dict(self) -> dict[str, str]:
        return dict(self._ids)


class FolderHierarchyBuilder:
    """Makes sure every source folder exists below the remote root.

    Folders are created with Graph's "fail" conflict behavior. When a
    folder already exists the create call fails with a conflict; the
    builder then looks the folder up by name in its parent and adopts its
    id. Anything it cannot resolve aborts the run.
    """

    def __init__(
        self,
        client: GraphClient,
        report: ReportAggregator,
        executor: Optional[RetryExecutor] = None,
        sleep: SleepFunc = asyncio.sleep,
    ):
        """Initialize the builder.

        Args:
            client: Graph API client
            report: Report of the current run
            executor: Retry executor for remote calls (upload policy by default)
            sleep: Coroutine used for the inter-request delay (seconds)
        """
        self.client = client
        self.report = report
        self.executor = executor or RetryExecutor(upload_policy())
        self._sleep = sleep
        self.created: list[str] = []
        self.reused: list[str] = []

    async def build(
        self,
        drive_id: str,
        root_folder_id: str,
        folder_paths: Iterable[str],
        delay_ms: int = 0,
    ) -> FolderPathCache:
        """Create missing folders and return the path to id cache.

        Each path is walked from the root down, so a parent is always
        resolved before any of its children.

        Args:
            drive_id: Destination drive
            root_folder_id: Item id of the destination root folder
            folder_paths: Relative folder paths, e.g. ``["a", "a/b"]``
            delay_ms: Pause after resolving an existing folder

        Returns:
            FolderPathCache covering every folder in ``folder_paths``

        Raises:
            FolderCreationError: If a folder could not be created
            FolderResolutionError: If an existing folder is missing or ambiguous
        """
        cache = FolderPathCache(root_folder_id)

        for folder_path in folder_paths:
            parent_id = root_folder_id
            current_path = ""

            for segment in split_remote_path(folder_path):
                current_path = f"{current_path}/{segment}" if current_path else segment

                cached_id = cache.get(current_path)
                if cached_id is not None:
                    parent_id = cached_id
                    continue

                parent_id = await self._ensure_folder(
                    drive_id, parent_id, segment, current_path, delay_ms
                )
                cache.add(current_path, parent_id)

        logger.info(
            f"Folder hierarchy ready: {len(self.created)} created, "
            f"{len(self.reused)} reused"
        )
        return cache

    async def _ensure_folder(
        self,
        drive_id: str,
        parent_id: str,
        name: str,
        current_path: str,
        delay_ms: int,
    ) -> str:
        """Create one folder, or find it if it already exists. Returns its id."""
        try:
            item = await self.executor.run(
                lambda: self.client.create_folder(drive_id, parent_id, name, "fail"),
                f"create folder {current_path}",
            )
        except ConflictError:
            logger.debug(f"Folder {current_path} already exists, looking it up")
            folder_id = await self._resolve_existing(
                drive_id, parent_id, name, current_path
            )
            self.reused.append(current_path)
            await self._sleep(delay_ms / 1000)
            return folder_id
        except SpSyncError as e:
            logger.warning(f"Failed to create folder {current_path}: {e}")
            self.report.record_folder_failure()
            raise FolderCreationError(
                f"Failed to create folder {current_path}. Upload is aborted."
            ) from e

        folder_id = item.get("id") if isinstance(item, dict) else None
        if not folder_id:
            logger.warning(f"Folder {current_path} was created without an id.")
            self.report.record_folder_failure()
            raise FolderCreationError(
                f"Failed to create folder {current_path}. Upload is aborted."
            )

        logger.debug(f"Created folder {current_path}")
        self.created.append(current_path)
        return str(folder_id)

    async def _resolve_existing(
        self, drive_id: str, parent_id: str, name: str, current_path: str
    ) -> str:
        """Find the id of an existing child folder named ``name``."""
        try:
            matches = await self.executor.run(
                lambda: self.client.list_children_by_name(drive_id, parent_id, name),
                f"look up folder {current_path}",
            )
        except SpSyncError as e:
            logger.warning(f"Failed to get data for existing folder {current_path}: {e}")
            raise FolderResolutionError(
                f"Failed to get data for existing folder {current_path}. "
                "Upload is aborted."
            ) from e

        match = self._pick_match(matches, name, current_path)
        if "folder" not in match:
            logger.warning(f"Existing item {current_path} is not a folder.")
            raise FolderResolutionError(
                f"Existing item {current_path} is not a folder. Upload is aborted."
            )
        if not match.get("id"):
            raise FolderResolutionError(
                f"Failed to get data for existing folder {current_path}. "
                "Upload is aborted."
            )
        return str(match["id"])

    @staticmethod
    def _pick_match(
        matches: list[dict[str, Any]], name: str, current_path: str
    ) -> dict[str, Any]:
        """Pick the single existing item the lookup refers to.

        More than one result normally aborts the run. The name filter is
        case-insensitive on the service side, so when several items come
        back only the exact-name matches are kept first; the run still
        aborts unless exactly one remains. A lookup that can only return
        case variants of the same name would otherwise block every rerun.
        """
        if not matches:
            logger.warning(f"Failed to get data for existing folder {current_path}.")
            raise FolderResolutionError(
                f"Failed to get data for existing folder {current_path}. "
                "Upload is aborted."
            )
        if len(matches) > 1:
            # The service may match names case-insensitively
            matches = [item for item in matches if item.get("name") == name]
        if len(matches) != 1:
            logger.warning(f"Found multiple existing folders for {current_path}.")
            raise FolderResolutionError(
                f"Found multiple existing folders for {current_path}. "
                "Upload is aborted."
            )
        return matches[0]
