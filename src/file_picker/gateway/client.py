"""Async client for the Indexing Service REST API.

Every call injects the server-side bearer token, is bounded by a timeout,
and GET-style calls are retried a bounded number of times with a fixed
backoff. Mutating calls are sent once.
"""

import asyncio
import logging
from typing import Any, Optional

import httpx

from ..core.settings import Settings
from .auth import TokenProvider
from .errors import (
    AuthenticationError,
    IndexingServiceError,
    NotFoundError,
    TransientError,
    UpstreamError,
)
from .models import (
    ChildrenPage,
    Connection,
    KnowledgeBase,
    KnowledgeBaseCreate,
    Resource,
    ensure_absolute_path,
)

logger = logging.getLogger(__name__)

# Gateway errors that are worth another GET attempt
RETRYABLE_STATUS_CODES = {502, 503, 504}

DEFAULT_PAGE_SIZE = 100


class IndexingServiceClient:
    """Thin async wrapper over the Indexing Service endpoints.

    Example:
        client = IndexingServiceClient(settings)
        page = await client.list_children(connection_id, page_size=50)
        if page.has_more:
            ...
    """

    def __init__(
        self,
        settings: Settings,
        token_provider: Optional[TokenProvider] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize client.

        Args:
            settings: Application settings (base URL, timeouts, retries).
            token_provider: Shared token cache; created if not given.
            transport: Optional httpx transport (used by tests).
        """
        self.settings = settings
        self.tokens = token_provider or TokenProvider(settings, transport=transport)
        self._transport = transport

    # ------------------------------------------------------------------
    # Request plumbing
    # ------------------------------------------------------------------

    async def _send(
        self,
        client: httpx.AsyncClient,
        method: str,
        path: str,
        params: Optional[dict[str, Any]] = None,
        json: Any = None,
    ) -> httpx.Response:
        """Send one request, re-authenticating once on 401."""
        headers = await self.tokens.auth_headers()
        if json is not None:
            headers["Content-Type"] = "application/json"
        response = await client.request(method, path, params=params, json=json, headers=headers)

        if response.status_code == 401:
            logger.info(f"Token rejected for {method} {path}, re-authenticating")
            self.tokens.invalidate()
            headers.update(await self.tokens.auth_headers())
            response = await client.request(method, path, params=params, json=json, headers=headers)
            if response.status_code == 401:
                raise AuthenticationError(
                    "Indexing Service rejected the refreshed token",
                    details=_safe_json(response),
                )
        return response

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]] = None,
        json: Any = None,
        timeout: Optional[float] = None,
        retries: Optional[int] = None,
        backoff: Optional[float] = None,
    ) -> Any:
        """Perform a request and return the decoded JSON body.

        Args:
            method: HTTP method.
            path: Path relative to the configured base URL.
            params: Query parameters.
            json: JSON body.
            timeout: Per-call timeout in seconds.
            retries: Extra attempts for GET calls (ignored for others).
            backoff: Fixed delay between attempts.

        Returns:
            Decoded JSON body, or None for an empty body.

        Raises:
            IndexingServiceError: Any gateway failure (see errors module).
        """
        self.settings.require_endpoints()
        timeout = timeout or self.settings.request_timeout_seconds
        backoff = self.settings.retry_backoff_seconds if backoff is None else backoff
        if retries is None:
            retries = self.settings.get_retries
        attempts = retries + 1 if method.upper() == "GET" else 1

        last_error: Optional[IndexingServiceError] = None
        for attempt in range(attempts):
            try:
                async with httpx.AsyncClient(
                    base_url=self.settings.base_url,
                    timeout=timeout,
                    transport=self._transport,
                ) as client:
                    response = await self._send(client, method, path, params=params, json=json)
            except httpx.TimeoutException as e:
                last_error = TransientError(f"Request timeout - {method} {path} is not responding")
                logger.warning(f"Timeout on {method} {path} (attempt {attempt + 1}/{attempts}): {e}")
            except httpx.TransportError as e:
                last_error = TransientError(f"Network connection issue on {method} {path}: {e}")
                logger.warning(f"Network error on {method} {path} (attempt {attempt + 1}/{attempts}): {e}")
            else:
                if response.status_code < 400:
                    return _safe_json(response)
                last_error = _error_for(response, method, path)
                if response.status_code not in RETRYABLE_STATUS_CODES:
                    raise last_error
                logger.warning(
                    f"Upstream {response.status_code} on {method} {path} "
                    f"(attempt {attempt + 1}/{attempts})"
                )

            if attempt < attempts - 1:
                await asyncio.sleep(backoff)
                logger.info(f"Retrying {method} {path}, {attempts - attempt - 1} attempts remaining...")

        raise last_error

    # ------------------------------------------------------------------
    # Organizations & connections
    # ------------------------------------------------------------------

    async def get_current_organization(self) -> dict[str, Any]:
        return await self._request("GET", "/organizations/me/current")

    async def list_connections(self, provider: Optional[str] = "gdrive") -> list[Connection]:
        """List storage connections, optionally filtered by provider."""
        raw = await self._request("GET", "/connections") or []
        if provider:
            raw = [c for c in raw if c.get("connection_provider") == provider]
        return [Connection.from_api(c) for c in raw]

    async def list_children(
        self,
        connection_id: str,
        resource_id: Optional[str] = None,
        cursor: Optional[str] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        search_query: Optional[str] = None,
    ) -> ChildrenPage:
        """List one page of a connection's resources.

        A full page is the only signal that more items exist, so
        ``has_more`` is ``len(items) == page_size``.
        """
        params: dict[str, Any] = {"page_size": page_size}
        if search_query:
            path = f"/connections/{connection_id}/resources/search"
            params["search_query"] = search_query
        else:
            path = f"/connections/{connection_id}/resources/children"
        if resource_id:
            params["resource_id"] = resource_id
        if cursor:
            params["cursor"] = cursor

        data = await self._request("GET", path, params=params)
        items = _items(data)
        has_more = len(items) == page_size
        next_cursor = data.get("next_cursor") if isinstance(data, dict) else None

        return ChildrenPage(
            data=_resources(items),
            total=len(items),
            has_more=has_more,
            cursor=next_cursor if has_more else None,
        )

    # ------------------------------------------------------------------
    # Knowledge bases
    # ------------------------------------------------------------------

    async def list_knowledge_bases(self) -> list[KnowledgeBase]:
        data = await self._request(
            "GET",
            "/knowledge_bases",
            timeout=self.settings.kb_request_timeout_seconds,
            backoff=self.settings.kb_retry_backoff_seconds,
        )
        return [KnowledgeBase.model_validate(kb) for kb in _items(data)]

    async def create_knowledge_base(self, params: KnowledgeBaseCreate) -> KnowledgeBase:
        data = await self._request(
            "POST",
            "/knowledge_bases",
            json=params.model_dump(mode="json"),
            timeout=self.settings.kb_request_timeout_seconds,
        )
        logger.info(f"Created knowledge base {data.get('knowledge_base_id')}")
        return KnowledgeBase.model_validate(data)

    async def get_knowledge_base(self, knowledge_base_id: str) -> KnowledgeBase:
        data = await self._request("GET", f"/knowledge_bases/{knowledge_base_id}")
        return KnowledgeBase.model_validate(data)

    async def put_knowledge_base(self, knowledge_base: KnowledgeBase) -> KnowledgeBase:
        """Replace a knowledge base with the full object given.

        Partial updates are not supported upstream; callers must pass an
        object obtained from :meth:`get_knowledge_base`.
        """
        data = await self._request(
            "PUT",
            f"/knowledge_bases/{knowledge_base.knowledge_base_id}",
            json=knowledge_base.to_payload(),
        )
        if isinstance(data, dict) and data.get("knowledge_base_id"):
            return KnowledgeBase.model_validate(data)
        return knowledge_base

    async def trigger_sync(self, knowledge_base_id: str, org_id: str) -> Any:
        """Queue a re-index job. Success means accepted, not finished."""
        return await self._request(
            "GET", f"/knowledge_bases/sync/trigger/{knowledge_base_id}/{org_id}"
        )

    async def list_knowledge_base_children(
        self,
        knowledge_base_id: str,
        resource_path: str = "/",
    ) -> list[Resource]:
        """List what is currently indexed under ``resource_path``.

        A path that is not indexed (404) yields an empty list. Children are
        returned with paths under ``resource_path`` even when the listing
        names them relative to it.
        """
        try:
            data = await self._request(
                "GET",
                f"/knowledge_bases/{knowledge_base_id}/resources/children",
                params={"resource_path": ensure_absolute_path(resource_path)},
            )
        except NotFoundError:
            return []
        return [r.under(resource_path) for r in _resources(_items(data))]

    async def get_indexed_paths(
        self,
        knowledge_base_id: str,
        path_prefix: str = "/",
    ) -> list[str]:
        """Absolute paths currently present in the live index listing."""
        resources = await self.list_knowledge_base_children(knowledge_base_id, path_prefix)
        return [r.absolute_path for r in resources]

    async def delete_resource(self, knowledge_base_id: str, resource_path: str) -> bool:
        """Delete an indexed path.

        Returns:
            True if deleted, False if it was already gone.
        """
        try:
            await self._request(
                "DELETE",
                f"/knowledge_bases/{knowledge_base_id}/resources",
                params={"resource_path": ensure_absolute_path(resource_path)},
            )
        except NotFoundError:
            logger.info(f"Path {resource_path} already absent from {knowledge_base_id}")
            return False
        return True


def _safe_json(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None


def _items(data: Any) -> list[dict[str, Any]]:
    """Upstream lists come either bare or wrapped in ``{"data": [...]}``."""
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        return data.get("data") or []
    return []


def _resources(items: list[dict[str, Any]]) -> list[Resource]:
    """Validate listing items, skipping entries that carry no path."""
    resources = []
    for item in items:
        inode_path = item.get("inode_path") if isinstance(item, dict) else None
        if not isinstance(inode_path, dict) or not inode_path.get("path"):
            logger.debug(f"Skipping listing entry without a path: {item!r}")
            continue
        resources.append(Resource.model_validate(item))
    return resources


def _error_for(response: httpx.Response, method: str, path: str) -> UpstreamError:
    details = _safe_json(response)
    message = f"API call failed: {response.status_code} {response.reason_phrase}"
    if isinstance(details, dict):
        upstream = details.get("message") or details.get("detail") or details.get("error")
        if isinstance(upstream, str) and upstream:
            message = upstream
    if response.status_code == 404:
        return NotFoundError(message, status_code=404, details=details)
    logger.debug(f"Upstream error on {method} {path}: {message}")
    return UpstreamError(message, status_code=response.status_code, details=details)
