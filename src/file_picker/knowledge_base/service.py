"""Knowledge base client.

Finds or creates the knowledge base for a connection and mutates its
membership list (``connection_source_ids``). Every mutation is a full
read-modify-write of the remote object followed by a fire-and-forget sync
trigger; completion is observed by the status poller, not here.
"""

import logging
from typing import Any, Callable, Iterable, Optional

from ..gateway.client import IndexingServiceClient
from ..gateway.errors import IndexingServiceError
from ..gateway.models import (
    IndexingParams,
    KnowledgeBase,
    KnowledgeBaseCreate,
    Resource,
    SyncOutcome,
)
from .cache import KnowledgeBaseCache

logger = logging.getLogger(__name__)


def default_knowledge_base_request(connection_id: str) -> KnowledgeBaseCreate:
    """Creation body for a connection's knowledge base with empty membership."""
    return KnowledgeBaseCreate(
        connection_id=connection_id,
        connection_source_ids=[],
        name=f"File Picker Knowledge Base - {connection_id[:8]}",
        description=f"Knowledge base for connection {connection_id}",
        indexing_params=IndexingParams(),
    )


class KnowledgeBaseService:
    """Knowledge base operations on top of the Indexing Service client.

    ``get_or_create`` is idempotent at the business level but not atomic:
    two concurrent first callers for the same connection may each create a
    knowledge base. Membership updates are last-PUT-wins against other
    clients.
    """

    def __init__(
        self,
        client: IndexingServiceClient,
        cache: Optional[KnowledgeBaseCache] = None,
        org_id: Optional[str] = None,
    ):
        """Initialize service.

        Args:
            client: Indexing Service client.
            cache: Connection -> knowledge base cache (a private one if omitted).
            org_id: Organization ID; looked up on first sync when omitted.
        """
        self.client = client
        self.cache = cache if cache is not None else KnowledgeBaseCache()
        self._org_id = org_id

    async def get_or_create(self, connection_id: str) -> KnowledgeBase:
        """Return the knowledge base for a connection, creating it if needed.

        Args:
            connection_id: The storage connection ID.

        Returns:
            The existing or newly created knowledge base.
        """
        cached = self.cache.get(connection_id)
        if cached is not None:
            return cached

        for kb in await self.client.list_knowledge_bases():
            if kb.connection_id == connection_id:
                logger.info(f"Found existing knowledge base {kb.knowledge_base_id} for {connection_id}")
                return self.cache.put(connection_id, kb)

        logger.info(f"No knowledge base for {connection_id}, creating one")
        kb = await self.client.create_knowledge_base(default_knowledge_base_request(connection_id))
        return self.cache.put(connection_id, kb)

    def forget(self, connection_id: str) -> None:
        """Drop the cached knowledge base for a connection."""
        if self.cache.invalidate(connection_id):
            logger.info(f"Forgot knowledge base for {connection_id}")

    async def get(self, knowledge_base_id: str) -> KnowledgeBase:
        """Fetch the current remote state of a knowledge base."""
        return await self.client.get_knowledge_base(knowledge_base_id)

    async def resolve_org_id(self) -> str:
        """Organization ID used for sync triggers (fetched once)."""
        if not self._org_id:
            org = await self.client.get_current_organization()
            self._org_id = org["org_id"]
        return self._org_id

    async def trigger_sync(self, knowledge_base_id: str, org_id: Optional[str] = None) -> Any:
        """Queue a re-index job for a knowledge base.

        Returns as soon as the job is accepted.
        """
        org_id = org_id or await self.resolve_org_id()
        logger.info(f"Triggering sync for {knowledge_base_id} in org {org_id}")
        return await self.client.trigger_sync(knowledge_base_id, org_id)

    async def add_resources(
        self,
        knowledge_base_id: str,
        resource_ids: Iterable[str],
    ) -> SyncOutcome:
        """Union resource IDs into the membership and trigger a sync.

        Adding IDs that are already members is a no-op on the set.
        """
        resource_ids = list(resource_ids)
        return await self._update_membership(
            knowledge_base_id,
            lambda kb: kb.with_sources_added(resource_ids),
            f"Added {len(resource_ids)} resource(s)",
        )

    async def remove_resource(self, knowledge_base_id: str, resource_id: str) -> SyncOutcome:
        """Drop one resource ID from the membership and trigger a sync."""
        return await self._update_membership(
            knowledge_base_id,
            lambda kb: kb.with_source_removed(resource_id),
            f"Removed resource {resource_id}",
        )

    async def _update_membership(
        self,
        knowledge_base_id: str,
        mutate: Callable[[KnowledgeBase], KnowledgeBase],
        summary: str,
    ) -> SyncOutcome:
        current = await self.client.get_knowledge_base(knowledge_base_id)
        saved = await self.client.put_knowledge_base(mutate(current))
        self._refresh_cache(saved)

        outcome = SyncOutcome(
            knowledge_base_id=saved.knowledge_base_id,
            connection_source_ids=list(saved.connection_source_ids),
        )
        try:
            await self.trigger_sync(knowledge_base_id)
        except IndexingServiceError as e:
            # The membership change stands; only the sync is missing.
            logger.warning(f"{summary} on {knowledge_base_id} but sync trigger failed: {e.message}")
            outcome.status = "partial"
            outcome.sync_triggered = False
            outcome.error = e.message
            outcome.message = f"{summary}; sync could not be triggered"
            return outcome

        outcome.message = f"{summary}; sync triggered, indexing in progress"
        return outcome

    def _refresh_cache(self, knowledge_base: KnowledgeBase) -> None:
        connection_id = knowledge_base.connection_id
        if connection_id and self.cache.get(connection_id) is not None:
            self.cache.put(connection_id, knowledge_base)

    async def get_indexed_paths(self, knowledge_base_id: str, path_prefix: str = "/") -> list[str]:
        return await self.client.get_indexed_paths(knowledge_base_id, path_prefix)

    async def get_indexed_resources(self, knowledge_base_id: str) -> list[Resource]:
        """Members that are live in the index, plus the children of member folders.

        Returns:
            Resources de-duplicated by ``resource_id``.
        """
        kb = await self.client.get_knowledge_base(knowledge_base_id)
        members = set(kb.connection_source_ids)
        if not members:
            return []

        available = await self.client.list_knowledge_base_children(knowledge_base_id, "/")
        found: dict[str, Resource] = {}
        folders: list[Resource] = []
        for resource in available:
            if resource.resource_id in members:
                found[resource.resource_id] = resource
                if resource.is_directory:
                    folders.append(resource)

        for folder in folders:
            try:
                children = await self.client.list_knowledge_base_children(
                    knowledge_base_id, folder.absolute_path
                )
            except IndexingServiceError as e:
                logger.warning(f"Failed to fetch contents of folder {folder.path}: {e.message}")
                continue
            for child in children:
                found[child.resource_id] = child

        logger.info(f"Returning {len(found)} indexed resources for {knowledge_base_id}")
        return list(found.values())

    async def unindex(self, knowledge_base_id: str, resource_path: str) -> bool:
        """Delete a path from the index; an already-missing path is not an error."""
        return await self.client.delete_resource(knowledge_base_id, resource_path)
