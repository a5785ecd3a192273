"""Connections API Router - Storage connections and their resources."""

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query

from ..gateway.client import DEFAULT_PAGE_SIZE, IndexingServiceClient
from ..gateway.errors import IndexingServiceError
from ..gateway.models import ChildrenPage, Connection
from ..indexing.browse import available_extensions, filter_resources, sort_resources
from .deps import get_client, http_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/connections", tags=["connections"])


@router.get("", response_model=list[Connection])
async def list_connections(
    provider: Optional[str] = Query("gdrive", description="Provider to filter by; empty for all"),
    client: IndexingServiceClient = Depends(get_client),
) -> list[Connection]:
    """List storage connections."""
    try:
        return await client.list_connections(provider=provider or None)
    except IndexingServiceError as e:
        raise http_error(e) from e


@router.get("/{connection_id}/resources/children", response_model=ChildrenPage)
async def list_children(
    connection_id: str,
    resource_id: Optional[str] = Query(None, description="Folder to list; root if omitted"),
    cursor: Optional[str] = None,
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=1000),
    search_query: Optional[str] = None,
    type_filter: str = Query("all", description="all, files, folders or a file extension"),
    sort_by: Optional[Literal["name", "date"]] = Query(None, description="Folders first, then by this field"),
    direction: Literal["asc", "desc"] = "asc",
    client: IndexingServiceClient = Depends(get_client),
) -> ChildrenPage:
    """List one page of a folder's children, or search the connection.

    ``hasMore`` is true exactly when the upstream page is full; the type
    filter and sort apply to this page only.
    """
    try:
        page = await client.list_children(
            connection_id,
            resource_id=resource_id,
            cursor=cursor,
            page_size=page_size,
            search_query=search_query,
        )
    except IndexingServiceError as e:
        raise http_error(e) from e

    page.extensions = available_extensions(page.data)
    resources = filter_resources(page.data, type_filter=type_filter)
    if sort_by:
        resources = sort_resources(resources, sort_by=sort_by, direction=direction)
    page.data = resources

    logger.info(f"Listed {page.total} resource(s) for {connection_id} (hasMore={page.has_more})")
    return page
