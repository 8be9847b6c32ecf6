"""Sync engine for PySpSync - mirror a local tree into a Graph drive."""

from .engine import RemoteLocation, SyncEngine
from .folders import FolderHierarchyBuilder, FolderPathCache
from .report import ReportAggregator, SyncReport, UploadOutcome
from .scanner import DirectoryTreeScanner, EntryKind, SourceEntry, SourceStructure
from .uploader import FileUploadOrchestrator

__all__ = [
    "SyncEngine",
    "RemoteLocation",
    "DirectoryTreeScanner",
    "SourceEntry",
    "SourceStructure",
    "EntryKind",
    "FolderHierarchyBuilder",
    "FolderPathCache",
    "FileUploadOrchestrator",
    "ReportAggregator",
    "SyncReport",
    "UploadOutcome",
]
