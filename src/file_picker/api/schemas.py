"""Pydantic schemas for the file picker API.

Request and response models for the proxy and session endpoints. Wire
models shared with the Indexing Service live in ``gateway.models``.
"""

from typing import Optional

from pydantic import BaseModel, Field

from ..gateway.models import Resource, SyncOutcome
from ..indexing.status import IndexingState, ResourceStatus


# --- Knowledge base proxy schemas ---

class AddResourcesRequest(BaseModel):
    """Request body for adding resources to a connection's knowledge base."""

    connection_id: str = Field(..., min_length=1)
    resource_ids: list[str] = Field(..., min_length=1, description="Resources to add")
    knowledge_base_id: Optional[str] = Field(
        None, description="Target knowledge base; the connection's own is used if omitted"
    )

    model_config = {"json_schema_extra": {"examples": [
        {"connection_id": "c1f3a9d2-0000", "resource_ids": ["res-1", "res-2"]}
    ]}}


class RemoveResourceRequest(BaseModel):
    """Request body for removing one resource from a knowledge base."""

    connection_id: str = Field(..., min_length=1)
    resource_id: str = Field(..., min_length=1)
    knowledge_base_id: Optional[str] = None


class IndexResourceRequest(BaseModel):
    """Request body for indexing a single resource."""

    connection_id: str = Field(..., min_length=1)
    resource_id: str = Field(..., min_length=1)
    knowledge_base_id: Optional[str] = None


class UnindexRequest(BaseModel):
    """Request body for deleting a path from the index."""

    knowledge_base_id: str = Field(..., min_length=1)
    resource_path: str = Field(..., min_length=1)


class UnindexResponse(BaseModel):
    success: bool = True
    deleted: bool
    resource_path: str


class IndexedPathsResponse(BaseModel):
    """Paths currently present in the live index listing."""

    indexed_file_paths: list[str] = Field(default_factory=list, serialization_alias="indexedFilePaths")


class CreateKnowledgeBaseRequest(BaseModel):
    """Request body for creating a knowledge base with default indexing parameters."""

    connection_id: str = Field(..., min_length=1)
    connection_source_ids: list[str] = Field(default_factory=list)
    name: str = Field(..., min_length=1)
    description: Optional[str] = None


# --- Session schemas ---

class ResourceStatusModel(BaseModel):
    """Displayed status of one resource."""

    state: IndexingState
    files_processed: Optional[int] = None
    total_files: Optional[int] = None
    error: Optional[str] = None

    @classmethod
    def from_status(cls, status: ResourceStatus) -> "ResourceStatusModel":
        return cls(**status.to_dict())


class ResourceActionRequest(BaseModel):
    """A resource the caller wants to act on (as returned by a listing)."""

    resource: Resource


class ResourceActionResponse(BaseModel):
    resource_id: str
    status: ResourceStatusModel
    outcome: Optional[SyncOutcome] = None


class SelectionSetRequest(BaseModel):
    """Resources that make up the new selection."""

    resources: list[Resource] = Field(default_factory=list)


class StatusSyncRequest(BaseModel):
    """Resources currently on screen, to reconcile with the remote signals."""

    resources: list[Resource] = Field(default_factory=list)


class StatusesResponse(BaseModel):
    connection_id: str
    knowledge_base_id: Optional[str] = None
    statuses: dict[str, ResourceStatusModel] = Field(default_factory=dict)
    polling: list[str] = Field(default_factory=list, description="Resources with an active poller")


class NavigateRequest(BaseModel):
    folder_id: Optional[str] = Field(None, description="Folder to enter; null for the root")


class SelectionResponse(BaseModel):
    selected_ids: list[str] = Field(default_factory=list)
    count: int = 0
    current_folder_id: Optional[str] = None


class IndexSelectedResponse(BaseModel):
    indexed_ids: list[str] = Field(default_factory=list)
    outcome: Optional[SyncOutcome] = None
    message: str = ""


class SessionClosedResponse(BaseModel):
    connection_id: str
    closed: bool
    pollers_cancelled: int = 0
