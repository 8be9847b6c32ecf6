"""Async client for the Microsoft Graph drive API."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, AsyncIterable, Literal, Optional, Union

import aiofiles
import httpx

from .config import config
from .exceptions import (
    ConflictError,
    FatalError,
    GraphAPIError,
    LockedError,
    NetworkError,
    SpSyncConfigError,
    TransientError,
)
from .retry import (
    TRANSIENT_STATUSES,
    RetryExecutor,
    RetryPolicy,
    download_policy,
    get_retry_after_delay,
)
from .utils import odata_string, quote_remote_path

logger = logging.getLogger(__name__)

ConflictBehavior = Literal["fail", "replace", "rename"]

# Longest response body quoted in an error message
_MAX_ERROR_TEXT = 500


def error_from_response(response: httpx.Response, context: str = "") -> GraphAPIError:
    """Classify a failed response into one of the Graph error types.

    Args:
        response: A response with a non-2xx status (body already read)
        context: Optional description prepended to the message

    Returns:
        ConflictError (409), LockedError (423), TransientError (rate limit
        and gateway statuses) or FatalError (anything else)
    """
    status = response.status_code
    try:
        body = response.text[:_MAX_ERROR_TEXT]
    except httpx.ResponseNotRead:
        body = ""
    prefix = f"{context}: " if context else ""
    message = f"{prefix}Graph API error {status}"
    if body:
        message = f"{message}: {body}"
    retry_after_ms = get_retry_after_delay(response.headers)

    if status == 409:
        return ConflictError(message, status_code=status)
    if status == 423:
        return LockedError(message, status_code=status)
    if status in TRANSIENT_STATUSES:
        return TransientError(message, status_code=status, retry_after_ms=retry_after_ms)
    return FatalError(message, status_code=status, retry_after_ms=retry_after_ms)


class GraphClient:
    """Client for the drive endpoints of the Microsoft Graph API.

    The client performs single requests and turns failures into typed
    exceptions; retries are left to :class:`~pyspsync.retry.RetryExecutor`.

    Examples:
        >>> async with GraphClient(access_token="...") as client:
        ...     item = await client.create_folder(drive_id, folder_id, "docs")
    """

    def __init__(
        self,
        access_token: str | None = None,
        api_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the Graph client.

        Args:
            access_token: Bearer token (uses config if not provided)
            api_url: Graph base URL (uses config if not provided)
            timeout: Request timeout in seconds (uses config if not provided)
            transport: Optional httpx transport, mainly for tests
        """
        self.access_token = access_token or config.access_token
        self.api_url = (api_url or config.graph_url).rstrip("/")
        self.timeout = timeout if timeout is not None else config.timeout
        self._transport = transport

        if not self.access_token:
            raise SpSyncConfigError(
                "Access token not configured. Please set SPSYNC_ACCESS_TOKEN "
                "environment variable."
            )

        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the httpx client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                headers={
                    "Authorization": f"Bearer {self.access_token}",
                    "Accept": "application/json",
                },
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the client and release connections."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "GraphClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def _request(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        """Make a single API request.

        Args:
            method: HTTP method
            endpoint: API endpoint path (relative to the Graph base URL)
            **kwargs: Additional arguments passed to httpx

        Returns:
            Response JSON data ({} for empty bodies)

        Raises:
            NetworkError: If no response was received
            GraphAPIError: A typed subclass for any non-2xx response
        """
        url = f"{self.api_url}/{endpoint.lstrip('/')}"
        logger.debug(f"Accessing Graph API endpoint: {method} {url}")

        try:
            response = await self._get_client().request(method, url, **kwargs)
        except httpx.RequestError as e:
            raise NetworkError(f"Network error for {method} {url}: {e}") from e

        if not response.is_success:
            raise error_from_response(response)

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            # PUT content may answer with a non-JSON body
            return {}

    # =========================
    # Folder Operations
    # =========================

    async def create_folder(
        self,
        drive_id: str,
        parent_id: str,
        name: str,
        conflict_behavior: ConflictBehavior = "fail",
    ) -> dict[str, Any]:
        """Create a child folder.

        With ``conflict_behavior="fail"`` an existing item of the same name
        makes the call raise :class:`ConflictError` instead of renaming.

        Args:
            drive_id: Drive that holds the parent
            parent_id: Item id of the parent folder
            name: Name of the new folder
            conflict_behavior: Graph conflict behavior

        Returns:
            The created drive item
        """
        endpoint = f"/drives/{drive_id}/items/{parent_id}/children"
        data = {
            "name": name,
            "folder": {},
            "@microsoft.graph.conflictBehavior": conflict_behavior,
        }
        return await self._request("POST", endpoint, json=data)

    async def list_children_by_name(
        self, drive_id: str, parent_id: str, name: str
    ) -> list[dict[str, Any]]:
        """List the children of a folder whose name equals ``name``.

        Name matching is done by the service and may be case-insensitive.

        Returns:
            List of matching drive items (possibly empty)
        """
        endpoint = f"/drives/{drive_id}/items/{parent_id}/children"
        params = {"$filter": f"name eq {odata_string(name)}"}
        result = await self._request("GET", endpoint, params=params)
        return list(result.get("value") or [])

    # =========================
    # Upload Operations
    # =========================

    async def put_content(
        self,
        drive_id: str,
        folder_id: str,
        relative_path: str,
        content: Union[bytes, AsyncIterable[bytes]],
        content_type: str,
    ) -> dict[str, Any]:
        """Create or replace a file below a folder.

        Args:
            drive_id: Drive that holds the folder
            folder_id: Item id the path is relative to
            relative_path: Path of the file below ``folder_id``
            content: File bytes or an async byte stream
            content_type: MIME type sent as Content-Type

        Returns:
            The uploaded drive item
        """
        endpoint = (
            f"/drives/{drive_id}/items/{folder_id}:/"
            f"{quote_remote_path(relative_path)}:/content"
        )
        return await self._request(
            "PUT",
            endpoint,
            content=content,
            headers={"Content-Type": content_type},
        )

    # =========================
    # Download Operations
    # =========================

    async def download_file(
        self,
        url: str,
        output_path: Path,
        policy: Optional[RetryPolicy] = None,
        chunk_size: int = 64 * 1024,
    ) -> Path:
        """Download a URL to a local file, retrying transient failures.

        The URL is fetched without the Graph bearer token; it is expected to
        be pre-authorized (e.g. a download link).

        Args:
            url: Absolute URL to fetch
            output_path: Where to write the file
            policy: Retry policy (defaults to the download policy)
            chunk_size: Streaming chunk size in bytes

        Returns:
            Path where the file was saved
        """
        executor = RetryExecutor(policy or download_policy())

        async def _download() -> Path:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                transport=self._transport,
            ) as plain_client:
                try:
                    async with plain_client.stream("GET", url) as response:
                        if not response.is_success:
                            await response.aread()
                            raise error_from_response(response, "Download failed")
                        output_path.parent.mkdir(parents=True, exist_ok=True)
                        async with aiofiles.open(output_path, "wb") as f:
                            async for chunk in response.aiter_bytes(chunk_size):
                                await f.write(chunk)
                except httpx.RequestError as e:
                    raise NetworkError(f"Network error downloading {url}: {e}") from e
            logger.info(f"Downloaded {url} to {output_path}")
            return output_path

        return await executor.run(_download, url)
