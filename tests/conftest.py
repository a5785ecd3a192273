"""Shared fixtures: settings and an in-memory Indexing Service.

The fake service is served through ``httpx.MockTransport`` so the real
client, token provider and knowledge base service run unmodified.
"""

import itertools
import json
from typing import Optional
from urllib.parse import unquote

import httpx
import pytest

from file_picker.core.settings import Settings
from file_picker.gateway.client import IndexingServiceClient
from file_picker.gateway.models import Resource, parent_path
from file_picker.knowledge_base.cache import KnowledgeBaseCache
from file_picker.knowledge_base.service import KnowledgeBaseService

BASE_URL = "https://api.indexing.test"
AUTH_URL = "https://auth.indexing.test"
EMAIL = "service@example.com"
PASSWORD = "correct-horse"
ORG_ID = "org-1"
CONNECTION_ID = "conn-1234567890"


def make_resource(resource_id: str, path: str, directory: bool = False, **extra) -> dict:
    """Raw resource payload as the Indexing Service returns it."""
    data = {
        "resource_id": resource_id,
        "inode_path": {"path": path},
        "inode_type": "directory" if directory else "file",
    }
    data.update(extra)
    return data


def resource(resource_id: str, path: str, directory: bool = False, **extra) -> Resource:
    return Resource.model_validate(make_resource(resource_id, path, directory, **extra))


class FakeIndexingService:
    """Minimal stateful stand-in for the Indexing Service and its auth service."""

    def __init__(self):
        self._ids = itertools.count(1)
        self.token_count = 0
        self.valid_tokens: set[str] = set()
        self.calls: list[tuple[str, str]] = []
        self.failures: dict[tuple[str, str], list[int]] = {}
        self.timeouts: set[tuple[str, str]] = set()
        self.organization = {"org_id": ORG_ID, "name": "Test Org"}
        self.connections = [
            {
                "connection_id": CONNECTION_ID,
                "name": "My Drive",
                "connection_provider": "gdrive",
                "connection_provider_data": {"email": "someone@example.com"},
            },
            {
                "connection_id": "conn-notion",
                "name": "Notion",
                "connection_provider": "notion",
            },
        ]
        # (connection_id, parent resource_id or None) -> raw resources
        self.children: dict[tuple[str, Optional[str]], list[dict]] = {}
        self.knowledge_bases: dict[str, dict] = {}
        # kb_id -> resource_path -> raw resources listed under it
        self.indexed: dict[str, dict[str, list[dict]]] = {}
        self.sync_triggers: list[tuple[str, str]] = []

    # -- test helpers --------------------------------------------------

    def fail(self, method: str, path: str, *statuses: int) -> None:
        """Answer the next calls to ``method path`` with ``statuses``."""
        self.failures.setdefault((method, path), []).extend(statuses)

    def add_knowledge_base(self, connection_id: str = CONNECTION_ID, source_ids=(), **extra) -> dict:
        kb_id = f"kb-{next(self._ids)}"
        kb = {
            "knowledge_base_id": kb_id,
            "connection_id": connection_id,
            "connection_source_ids": list(source_ids),
            "name": "Existing",
            "indexing_params": {"ocr": False},
        }
        kb.update(extra)
        self.knowledge_bases[kb_id] = kb
        return kb

    def index_path(self, kb_id: str, resource_id: str, path: str, directory: bool = False) -> None:
        """Make ``path`` appear in the live index listing of its parent."""
        listing = self.indexed.setdefault(kb_id, {}).setdefault(parent_path(path), [])
        listing.append(make_resource(resource_id, path.lstrip("/"), directory))

    def indexed_paths(self, kb_id: str) -> list[str]:
        return [
            f"/{item['inode_path']['path']}"
            for items in self.indexed.get(kb_id, {}).values()
            for item in items
        ]

    def count(self, method: str, path: str) -> int:
        return self.calls.count((method, path))

    # -- transport -----------------------------------------------------

    def handler(self, request: httpx.Request) -> httpx.Response:
        method = request.method
        path = unquote(request.url.path)

        if request.url.host == "auth.indexing.test":
            return self._token(request)

        self.calls.append((method, path))
        if (method, path) in self.timeouts:
            raise httpx.ReadTimeout("timed out", request=request)
        queued = self.failures.get((method, path))
        if queued:
            status = queued.pop(0)
            return httpx.Response(status, json={"message": f"Injected failure {status}"})

        token = request.headers.get("Authorization", "").removeprefix("Bearer ")
        if token not in self.valid_tokens:
            return httpx.Response(401, json={"message": "Invalid token"})

        return self._route(request, method, path)

    def _token(self, request: httpx.Request) -> httpx.Response:
        credentials = json.loads(request.content or b"{}")
        if credentials.get("email") != EMAIL or credentials.get("password") != PASSWORD:
            return httpx.Response(400, json={"error_description": "Invalid login credentials"})
        self.token_count += 1
        token = f"token-{self.token_count}"
        self.valid_tokens.add(token)
        return httpx.Response(200, json={"access_token": token, "expires_in": 3600})

    def _route(self, request: httpx.Request, method: str, path: str) -> httpx.Response:
        parts = path.strip("/").split("/")
        params = request.url.params

        if path == "/organizations/me/current":
            return httpx.Response(200, json=self.organization)

        if path == "/connections":
            return httpx.Response(200, json=self.connections)

        if parts[0] == "connections" and len(parts) == 4:
            connection_id = parts[1]
            if parts[3] == "children":
                items = self.children.get((connection_id, params.get("resource_id")), [])
            else:
                query = params.get("search_query", "").lower()
                items = [
                    item
                    for listing in self.children.values()
                    for item in listing
                    if query in item["inode_path"]["path"].lower()
                ]
            page_size = int(params.get("page_size", 100))
            start = int(params.get("cursor") or 0)
            page = items[start:start + page_size]
            next_cursor = str(start + page_size) if start + page_size < len(items) else None
            return httpx.Response(200, json={"data": page, "next_cursor": next_cursor})

        if parts[0] != "knowledge_bases":
            return httpx.Response(404, json={"message": "Not found"})

        if len(parts) == 1:
            if method == "GET":
                return httpx.Response(200, json=list(self.knowledge_bases.values()))
            body = json.loads(request.content)
            kb_id = f"kb-{next(self._ids)}"
            kb = {"knowledge_base_id": kb_id, **body}
            self.knowledge_bases[kb_id] = kb
            return httpx.Response(200, json=kb)

        if parts[1] == "sync":
            self.sync_triggers.append((parts[3], parts[4]))
            return httpx.Response(200, json={"status": "queued"})

        kb_id = parts[1]
        if kb_id not in self.knowledge_bases:
            return httpx.Response(404, json={"message": "Knowledge base not found"})

        if len(parts) == 2:
            if method == "PUT":
                self.knowledge_bases[kb_id] = json.loads(request.content)
            return httpx.Response(200, json=self.knowledge_bases[kb_id])

        resource_path = params.get("resource_path", "/")
        listing = self.indexed.get(kb_id, {})
        if method == "DELETE":
            for items in listing.values():
                for item in list(items):
                    if f"/{item['inode_path']['path']}" == resource_path:
                        items.remove(item)
                        return httpx.Response(200, json={"deleted": True})
            return httpx.Response(404, json={"message": "Resource not found"})

        if resource_path not in listing:
            return httpx.Response(404, json={"message": "Path not indexed"})
        return httpx.Response(200, json=listing[resource_path])


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings pointed at the fake service, with no retry or poll delays."""
    return Settings(
        base_url=BASE_URL,
        auth_url=AUTH_URL,
        anon_key="anon-key",
        email=EMAIL,
        password=PASSWORD,
        retry_backoff_seconds=0,
        kb_retry_backoff_seconds=0,
        poll_interval_seconds=0,
        poll_max_attempts=5,
        log_dir=str(tmp_path / "logs"),
    )


@pytest.fixture
def fake_service() -> FakeIndexingService:
    return FakeIndexingService()


@pytest.fixture
def transport(fake_service) -> httpx.MockTransport:
    return httpx.MockTransport(fake_service.handler)


@pytest.fixture
def client(settings, transport) -> IndexingServiceClient:
    return IndexingServiceClient(settings, transport=transport)


@pytest.fixture
def kb_service(client) -> KnowledgeBaseService:
    return KnowledgeBaseService(client, cache=KnowledgeBaseCache())
