"""Indexing Service data models.

Pydantic schemas for the resources, connections and knowledge bases the
Indexing Service returns. Models that are written back upstream keep
unknown fields so a read-modify-write never drops data.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


def ensure_absolute_path(path: Optional[str]) -> str:
    """Return ``path`` with a leading slash (``/`` for empty paths)."""
    if not path:
        return "/"
    return path if path.startswith("/") else f"/{path}"


def parent_path(path: str) -> str:
    """Absolute path of the directory containing ``path``."""
    absolute = ensure_absolute_path(path).rstrip("/")
    parent = absolute.rsplit("/", 1)[0]
    return parent or "/"


class InodeType(str, Enum):
    """Kind of remote storage node."""

    FILE = "file"
    DIRECTORY = "directory"


class InodePath(BaseModel):
    """Path wrapper used by the Indexing Service."""

    model_config = ConfigDict(extra="allow")

    path: str


class Resource(BaseModel):
    """A file or directory in the remote storage provider."""

    model_config = ConfigDict(extra="allow")

    resource_id: str
    inode_path: InodePath
    inode_type: InodeType = InodeType.FILE
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None
    size: Optional[int] = None
    status: Optional[str] = None

    @property
    def path(self) -> str:
        return self.inode_path.path

    @property
    def absolute_path(self) -> str:
        return ensure_absolute_path(self.inode_path.path)

    @property
    def name(self) -> str:
        return self.inode_path.path.rstrip("/").split("/")[-1]

    @property
    def is_directory(self) -> bool:
        return self.inode_type == InodeType.DIRECTORY

    def under(self, parent: str) -> "Resource":
        """Copy whose path sits under ``parent``.

        Folder listings may name children relative to the folder; a path
        already under ``parent`` is kept as is.
        """
        prefix = ensure_absolute_path(parent).rstrip("/")
        if not prefix or self.absolute_path.startswith(f"{prefix}/"):
            return self
        path = f"{prefix.lstrip('/')}/{self.name}"
        inode_path = self.inode_path.model_copy(update={"path": path})
        return self.model_copy(update={"inode_path": inode_path})

    @property
    def extension(self) -> str:
        """Lower-cased extension of a file name, ``""`` when there is none."""
        name = self.name
        dot = name.rfind(".")
        return name[dot + 1:].lower() if dot > 0 else ""


class ConnectionStatus(str, Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


class Connection(BaseModel):
    """A named handle to a remote storage account."""

    id: str
    name: str
    type: str
    status: ConnectionStatus = ConnectionStatus.CONNECTED
    metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> "Connection":
        """Map the upstream connection payload onto this model.

        Every connection the API returns is treated as connected.
        """
        return cls(
            id=raw["connection_id"],
            name=raw.get("name") or raw["connection_id"],
            type=raw.get("connection_provider", "unknown"),
            status=ConnectionStatus.CONNECTED,
            metadata=raw.get("connection_provider_data") or {},
        )


class EmbeddingParams(BaseModel):
    model_config = ConfigDict(extra="allow")

    embedding_model: str = "text-embedding-ada-002"
    api_key: Optional[str] = None


class ChunkerParams(BaseModel):
    model_config = ConfigDict(extra="allow")

    chunk_size: int = 1500
    chunk_overlap: int = 500
    chunker: str = "sentence"


class IndexingParams(BaseModel):
    """Fixed indexing parameters for knowledge bases created here."""

    model_config = ConfigDict(extra="allow")

    ocr: bool = False
    unstructured: bool = True
    embedding_params: EmbeddingParams = Field(default_factory=EmbeddingParams)
    chunker_params: ChunkerParams = Field(default_factory=ChunkerParams)


def _unique(ids: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(ids))


class KnowledgeBase(BaseModel):
    """A remote index container and its membership list.

    The Indexing Service only accepts whole objects on update, so extra
    fields are retained and written back unchanged.
    """

    model_config = ConfigDict(extra="allow")

    knowledge_base_id: str
    connection_id: Optional[str] = None
    connection_source_ids: list[str] = Field(default_factory=list)
    name: Optional[str] = None
    description: Optional[str] = None
    indexing_params: Optional[dict[str, Any]] = None
    org_level_role: Optional[str] = None
    cron_job_id: Optional[str] = None

    def with_sources_added(self, resource_ids: Iterable[str]) -> "KnowledgeBase":
        """Copy with ``resource_ids`` unioned into the membership."""
        merged = _unique([*self.connection_source_ids, *resource_ids])
        return self.model_copy(update={"connection_source_ids": merged})

    def with_source_removed(self, resource_id: str) -> "KnowledgeBase":
        """Copy with ``resource_id`` filtered out of the membership."""
        remaining = [rid for rid in _unique(self.connection_source_ids) if rid != resource_id]
        return self.model_copy(update={"connection_source_ids": remaining})

    def to_payload(self) -> dict[str, Any]:
        """Full JSON body for a PUT.

        Only fields the upstream object carried (plus changed ones) are sent,
        including fields this model doesn't name.
        """
        return self.model_dump(mode="json", exclude_unset=True)


class KnowledgeBaseCreate(BaseModel):
    """Body for creating a knowledge base."""

    connection_id: str
    connection_source_ids: list[str] = Field(default_factory=list)
    name: str
    description: str = "Knowledge base for selected resources"
    indexing_params: IndexingParams = Field(default_factory=IndexingParams)
    org_level_role: Optional[str] = None
    cron_job_id: Optional[str] = None


class ChildrenPage(BaseModel):
    """One page of a resource listing."""

    data: list[Resource] = Field(default_factory=list)
    total: int = 0
    has_more: bool = Field(False, serialization_alias="hasMore")
    cursor: Optional[str] = None
    extensions: list[str] = Field(default_factory=list, description="File extensions on the page")

    model_config = ConfigDict(populate_by_name=True)


class SyncOutcome(BaseModel):
    """Result of a membership change followed by a sync trigger.

    ``partial`` means the membership was saved but the sync job could not
    be queued.
    """

    knowledge_base_id: str
    connection_source_ids: list[str] = Field(default_factory=list)
    status: Literal["in_progress", "partial"] = "in_progress"
    sync_triggered: bool = True
    message: str = ""
    error: Optional[str] = None
