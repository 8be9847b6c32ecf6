"""Pytest fixtures for PySpSync tests."""

import json
import re
from collections import defaultdict
from typing import Optional
from unittest.mock import AsyncMock

import httpx
import pytest

from pyspsync.api import GraphClient

API_URL = "https://graph.test/v1.0"

_CHILDREN_RE = re.compile(r"/drives/([^/]+)/items/([^/:]+)/children$")
_CONTENT_RE = re.compile(r"/drives/([^/]+)/items/([^/:]+):/(.+):/content$")
_FILTER_RE = re.compile(r"^name eq '((?:[^']|'')*)'$")


class FakeGraphDrive:
    """In-memory stand-in for the Graph drive endpoints.

    Folders are keyed by (parent_id, name). Name lookups through ``$filter``
    are case-insensitive, like the real service.
    """

    def __init__(self, root_id: str = "root"):
        self.root_id = root_id
        self.folders: dict[tuple[str, str], str] = {}
        self.files: dict[tuple[str, str], bytes] = {}
        self.content_types: dict[tuple[str, str], str] = {}
        self.requests: list[httpx.Request] = []
        self.create_calls: list[tuple[str, str]] = []
        self.put_calls: list[str] = []
        # name -> list of statuses to answer with before accepting the upload
        self.put_failures: dict[str, list[int]] = defaultdict(list)
        # name -> status answered on every upload attempt
        self.put_always_fail: dict[str, int] = {}
        # name -> extra headers sent with the failing status
        self.put_fail_headers: dict[str, dict[str, str]] = {}
        self._next_id = 0

    # ----- helpers for tests -----

    def add_folder(self, parent_id: str, name: str) -> str:
        self._next_id += 1
        folder_id = f"folder-{self._next_id}"
        self.folders[(parent_id, name)] = folder_id
        return folder_id

    def folder_id(self, path: str) -> Optional[str]:
        parent = self.root_id
        for segment in path.split("/"):
            found = self.folders.get((parent, segment))
            if found is None:
                return None
            parent = found
        return parent

    def file_content(self, path: str) -> Optional[bytes]:
        folder, _, name = path.rpartition("/")
        parent = self.folder_id(folder) if folder else self.root_id
        return self.files.get((parent, name))

    # ----- transport -----

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        match = _CHILDREN_RE.search(path)
        if match and request.method == "POST":
            return self._create_child(match.group(2), json.loads(request.content))
        if match and request.method == "GET":
            return self._list_children(match.group(2), request)

        match = _CONTENT_RE.search(path)
        if match and request.method == "PUT":
            return self._put_content(match.group(2), match.group(3), request)

        return httpx.Response(404, json={"error": {"code": "itemNotFound"}})

    def _create_child(self, parent_id: str, body: dict) -> httpx.Response:
        name = body["name"]
        self.create_calls.append((parent_id, name))
        if (parent_id, name) in self.folders:
            return httpx.Response(409, json={"error": {"code": "nameAlreadyExists"}})
        folder_id = self.add_folder(parent_id, name)
        return httpx.Response(201, json={"id": folder_id, "name": name, "folder": {}})

    def _list_children(self, parent_id: str, request: httpx.Request) -> httpx.Response:
        match = _FILTER_RE.match(request.url.params.get("$filter", ""))
        wanted = match.group(1).replace("''", "'").lower() if match else None
        value = [
            {"id": folder_id, "name": name, "folder": {}}
            for (parent, name), folder_id in self.folders.items()
            if parent == parent_id and (wanted is None or name.lower() == wanted)
        ]
        return httpx.Response(200, json={"value": value})

    def _put_content(
        self, folder_id: str, relative_path: str, request: httpx.Request
    ) -> httpx.Response:
        self.put_calls.append(relative_path)
        *parents, name = relative_path.split("/")
        if name in self.put_always_fail:
            return httpx.Response(
                self.put_always_fail[name],
                text="permanent failure",
                headers=self.put_fail_headers.get(name),
            )
        if self.put_failures[name]:
            return httpx.Response(self.put_failures[name].pop(0), text="try again")

        parent = folder_id
        for segment in parents:
            found = self.folders.get((parent, segment))
            if found is None:
                return httpx.Response(404, json={"error": {"code": "itemNotFound"}})
            parent = found
        self.files[(parent, name)] = request.content
        self.content_types[(parent, name)] = request.headers.get("Content-Type", "")
        return httpx.Response(201, json={"id": f"file-{name}", "name": name, "file": {}})


@pytest.fixture
def fake_drive() -> FakeGraphDrive:
    """Provide an empty in-memory drive."""
    return FakeGraphDrive()


@pytest.fixture
def graph_client(fake_drive: FakeGraphDrive) -> GraphClient:
    """Provide a GraphClient wired to the fake drive."""
    return GraphClient(
        access_token="test_token",
        api_url=API_URL,
        transport=httpx.MockTransport(fake_drive.handler),
    )


@pytest.fixture
def no_sleep() -> AsyncMock:
    """A sleep replacement that returns immediately and records calls."""
    return AsyncMock(return_value=None)


@pytest.fixture
def source_tree(tmp_path):
    """Create the source tree {a/one.txt, a/b/two.txt}."""
    root = tmp_path / "docx"
    (root / "a" / "b").mkdir(parents=True)
    (root / "a" / "one.txt").write_text("one")
    (root / "a" / "b" / "two.txt").write_text("two")
    return root
