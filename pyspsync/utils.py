"""Utility functions for PySpSync."""

import mimetypes
from pathlib import Path
from typing import Union
from urllib.parse import quote

# =============================================================================
# Constants
# =============================================================================

GRAPH_API_URL: str = "https://graph.microsoft.com/v1.0"

DEFAULT_MIME_TYPE: str = "application/octet-stream"

# Read size for streamed uploads (1 MB)
UPLOAD_READ_SIZE: int = 1024 * 1024

# Request timeout (seconds)
DEFAULT_TIMEOUT: float = 60.0


# =============================================================================
# File helpers
# =============================================================================


def detect_mime_type(file_path: Union[str, Path]) -> str:
    """Guess the MIME type of a file from its extension.

    Args:
        file_path: Path to the file

    Returns:
        MIME type string (defaults to 'application/octet-stream' if unknown)

    Examples:
        >>> detect_mime_type("notes.txt")
        'text/plain'
        >>> detect_mime_type("blob.unknownext")
        'application/octet-stream'
    """
    mime_type, _ = mimetypes.guess_type(str(file_path))
    return mime_type or DEFAULT_MIME_TYPE


def format_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string (e.g., "1.5 MB", "256 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / 1024 / 1024:.1f} MB"
    else:
        return f"{size_bytes / 1024 / 1024 / 1024:.1f} GB"


# =============================================================================
# Path helpers
# =============================================================================


def split_remote_path(path: str) -> list[str]:
    """Split a relative remote path into its non-empty segments.

    Examples:
        >>> split_remote_path("/a//b/c")
        ['a', 'b', 'c']
        >>> split_remote_path("")
        []
    """
    return [segment for segment in path.split("/") if segment]


def quote_remote_path(path: str) -> str:
    """URL-encode each segment of a relative remote path, keeping slashes."""
    return "/".join(quote(segment, safe="") for segment in split_remote_path(path))


def odata_string(value: str) -> str:
    """Quote a value for use in an OData ``$filter`` expression.

    Examples:
        >>> odata_string("it's")
        "'it''s'"
    """
    return "'" + value.replace("'", "''") + "'"
