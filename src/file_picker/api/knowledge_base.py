"""Knowledge Base API Router - Membership changes and index status.

Provides endpoints for:
- Adding and removing resources (followed by a fire-and-forget sync)
- Reading the live indexed-path listing used for status polling
- Listing indexed resources and deleting paths from the index
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..gateway.errors import IndexingServiceError
from ..gateway.models import Resource, SyncOutcome
from ..knowledge_base.service import KnowledgeBaseService
from .deps import get_kb_service, http_error
from .schemas import (
    AddResourcesRequest,
    IndexedPathsResponse,
    IndexResourceRequest,
    RemoveResourceRequest,
    UnindexRequest,
    UnindexResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/knowledge-base", tags=["knowledge-base"])


async def _resolve_kb_id(
    service: KnowledgeBaseService,
    connection_id: Optional[str],
    knowledge_base_id: Optional[str],
) -> str:
    if knowledge_base_id:
        return knowledge_base_id
    if not connection_id:
        raise HTTPException(
            status_code=400,
            detail={"message": "Either connection_id or knowledge_base_id is required"},
        )
    kb = await service.get_or_create(connection_id)
    return kb.knowledge_base_id


@router.post("/add-resources", response_model=SyncOutcome)
async def add_resources(
    request: AddResourcesRequest,
    service: KnowledgeBaseService = Depends(get_kb_service),
) -> SyncOutcome:
    """Add resources to the connection's knowledge base and trigger a sync.

    Returns as soon as the sync is queued; ``status`` is ``partial`` when
    the membership was saved but the sync could not be triggered.
    """
    try:
        kb_id = await _resolve_kb_id(service, request.connection_id, request.knowledge_base_id)
        return await service.add_resources(kb_id, request.resource_ids)
    except IndexingServiceError as e:
        raise http_error(e) from e


@router.post("/index", response_model=SyncOutcome)
async def index_resource(
    request: IndexResourceRequest,
    service: KnowledgeBaseService = Depends(get_kb_service),
) -> SyncOutcome:
    """Add a single resource and trigger a sync."""
    try:
        kb_id = await _resolve_kb_id(service, request.connection_id, request.knowledge_base_id)
        return await service.add_resources(kb_id, [request.resource_id])
    except IndexingServiceError as e:
        raise http_error(e) from e


@router.post("/remove-resource", response_model=SyncOutcome)
async def remove_resource(
    request: RemoveResourceRequest,
    service: KnowledgeBaseService = Depends(get_kb_service),
) -> SyncOutcome:
    try:
        kb_id = await _resolve_kb_id(service, request.connection_id, request.knowledge_base_id)
        return await service.remove_resource(kb_id, request.resource_id)
    except IndexingServiceError as e:
        raise http_error(e) from e


@router.get("/status", response_model=IndexedPathsResponse)
async def get_status(
    knowledge_base_id: str = Query(..., min_length=1),
    resource_path: str = "/",
    service: KnowledgeBaseService = Depends(get_kb_service),
) -> IndexedPathsResponse:
    """Paths currently in the index under ``resource_path``.

    A path that is not indexed yet yields an empty list; other upstream
    failures are returned as errors so pollers can fail.
    """
    try:
        paths = await service.get_indexed_paths(knowledge_base_id, resource_path)
    except IndexingServiceError as e:
        raise http_error(e) from e
    return IndexedPathsResponse(indexed_file_paths=paths)


@router.get("/indexed-resources", response_model=list[Resource])
async def get_indexed_resources(
    connection_id: Optional[str] = None,
    knowledge_base_id: Optional[str] = None,
    service: KnowledgeBaseService = Depends(get_kb_service),
) -> list[Resource]:
    """Member resources that are live in the index, including member folders' contents."""
    try:
        kb_id = await _resolve_kb_id(service, connection_id, knowledge_base_id)
        return await service.get_indexed_resources(kb_id)
    except IndexingServiceError as e:
        raise http_error(e) from e


@router.post("/unindex", response_model=UnindexResponse)
async def unindex(
    request: UnindexRequest,
    service: KnowledgeBaseService = Depends(get_kb_service),
) -> UnindexResponse:
    """Delete a path from the index; a path that is already gone is not an error."""
    try:
        deleted = await service.unindex(request.knowledge_base_id, request.resource_path)
    except IndexingServiceError as e:
        raise http_error(e) from e
    return UnindexResponse(deleted=deleted, resource_path=request.resource_path)
