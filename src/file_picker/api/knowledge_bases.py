"""Knowledge Bases API Router - Direct knowledge base CRUD and sync trigger."""

import logging
from typing import Any

from fastapi import APIRouter, Depends

from ..gateway.client import IndexingServiceClient
from ..gateway.errors import IndexingServiceError
from ..gateway.models import IndexingParams, KnowledgeBase, KnowledgeBaseCreate
from .deps import get_client, http_error
from .schemas import CreateKnowledgeBaseRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/knowledge-bases", tags=["knowledge-bases"])


@router.get("", response_model=list[KnowledgeBase])
async def list_knowledge_bases(
    client: IndexingServiceClient = Depends(get_client),
) -> list[KnowledgeBase]:
    try:
        return await client.list_knowledge_bases()
    except IndexingServiceError as e:
        raise http_error(e) from e


@router.post("", response_model=KnowledgeBase)
async def create_knowledge_base(
    request: CreateKnowledgeBaseRequest,
    client: IndexingServiceClient = Depends(get_client),
) -> KnowledgeBase:
    """Create a knowledge base with the default indexing parameters."""
    params = KnowledgeBaseCreate(
        connection_id=request.connection_id,
        connection_source_ids=request.connection_source_ids,
        name=request.name,
        description=request.description or "Knowledge base for selected resources",
        indexing_params=IndexingParams(),
    )
    try:
        return await client.create_knowledge_base(params)
    except IndexingServiceError as e:
        raise http_error(e) from e


@router.get("/sync/trigger/{knowledge_base_id}/{org_id}")
async def trigger_sync(
    knowledge_base_id: str,
    org_id: str,
    client: IndexingServiceClient = Depends(get_client),
) -> Any:
    """Queue a sync job; returns once it is accepted."""
    try:
        return await client.trigger_sync(knowledge_base_id, org_id)
    except IndexingServiceError as e:
        raise http_error(e) from e


@router.get("/{knowledge_base_id}", response_model=KnowledgeBase)
async def get_knowledge_base(
    knowledge_base_id: str,
    client: IndexingServiceClient = Depends(get_client),
) -> KnowledgeBase:
    try:
        return await client.get_knowledge_base(knowledge_base_id)
    except IndexingServiceError as e:
        raise http_error(e) from e
