"""Local directory scanning for sync runs."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Union

from ..exceptions import NoContentError

logger = logging.getLogger(__name__)


class EntryKind(Enum):
    """Kind of a scanned source entry."""

    FILE = "file"
    DIRECTORY = "directory"


@dataclass(frozen=True)
class SourceEntry:
    """A file or directory found below the sync root."""

    name: str
    """Base name of the entry"""

    path: Path
    """Absolute path on the local filesystem"""

    relative_path: str
    """Path relative to the sync root (forward slashes, no leading slash)"""

    kind: EntryKind

    @property
    def is_dir(self) -> bool:
        return self.kind is EntryKind.DIRECTORY

    @property
    def parent_path(self) -> str:
        """Relative path of the containing folder ("" for the root)."""
        head, _, _ = self.relative_path.rpartition("/")
        return head


@dataclass
class SourceStructure:
    """Folders and files of a source tree, in depth-first preorder."""

    root: Path
    folders: list[SourceEntry] = field(default_factory=list)
    files: list[SourceEntry] = field(default_factory=list)

    @property
    def folder_paths(self) -> list[str]:
        return [folder.relative_path for folder in self.folders]

    def total_size(self) -> int:
        """Sum of the sizes of all scanned files, in bytes."""
        return sum(entry.path.stat().st_size for entry in self.files)


class DirectoryTreeScanner:
    """Enumerates a local directory tree before any remote call is made.

    The tree is walked depth-first in preorder with an explicit stack, so
    deep trees do not depend on the interpreter's recursion limit. Entries
    of a directory are visited in name order. Symlinks and special files
    are skipped.

    Examples:
        >>> structure = DirectoryTreeScanner().scan(Path("/tmp/contents/docx"))
        >>> [f.relative_path for f in structure.files]
        ['a/b/two.txt', 'a/one.txt']
    """

    def scan(self, root: Union[str, Path]) -> SourceStructure:
        """Scan ``root`` into ordered folder and file lists.

        Args:
            root: Directory to scan

        Returns:
            SourceStructure with relative paths computed from ``root``

        Raises:
            NoContentError: If ``root`` does not exist, is not a directory,
                or is empty. Empty subdirectories are not an error.
        """
        root = Path(root).absolute()
        if not root.is_dir():
            raise NoContentError(
                f"Directory {root} was not found and no files were uploaded. "
                "Check the source contents."
            )

        logger.debug(f"Reading source items from {root}")
        top_level = sorted(root.iterdir(), key=lambda p: p.name)
        if not top_level:
            raise NoContentError(
                f"No upload items found in {root}. "
                "Ensure the source contains valid content."
            )

        structure = SourceStructure(root=root)
        stack: list[Path] = list(reversed(top_level))

        while stack:
            item = stack.pop()
            relative_path = item.relative_to(root).as_posix()

            if item.is_symlink():
                logger.debug(f"> Skipping symlink: {item}")
            elif item.is_dir():
                logger.debug(f"> Recording directory: {item}")
                structure.folders.append(
                    SourceEntry(item.name, item, relative_path, EntryKind.DIRECTORY)
                )
                try:
                    children = sorted(item.iterdir(), key=lambda p: p.name)
                except PermissionError as e:
                    logger.warning(f"Permission denied, skipping contents: {e}")
                    continue
                stack.extend(reversed(children))
            elif item.is_file():
                logger.debug(f"> Adding file: {item}")
                structure.files.append(
                    SourceEntry(item.name, item, relative_path, EntryKind.FILE)
                )
            else:
                logger.debug(f"> Skipping non-file/non-directory item: {item}")

        logger.debug(
            f"Done with {root}: {len(structure.folders)} folder(s), "
            f"{len(structure.files)} file(s)"
        )
        return structure
