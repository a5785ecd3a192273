"""Indexing session.

Server-side state for one person browsing one connection: the current
selection, the per-resource status map, the active pollers and a local
copy of the knowledge base membership. User actions update that state
optimistically and reconcile it with the Indexing Service.
"""

import logging
from collections import defaultdict
from typing import Iterable, Optional

from ..gateway.errors import IndexingServiceError, NotFoundError
from ..gateway.models import KnowledgeBase, Resource, SyncOutcome, parent_path
from ..knowledge_base.service import KnowledgeBaseService
from .optimistic import OptimisticUpdate
from .poller import DEFAULT_INTERVAL_SECONDS, DEFAULT_MAX_ATTEMPTS, PollerRegistry, ResourcePoller
from .selection import SelectionTracker
from .status import (
    IN_PROGRESS_STATES,
    POLLING_STATES,
    IndexingState,
    InvalidTransitionError,
    ResourceStatus,
    StatusMap,
    TRANSITIONS,
    derive_state,
)

logger = logging.getLogger(__name__)


class IndexingSession:
    """Selection, statuses and pollers for a single connection."""

    def __init__(
        self,
        connection_id: str,
        kb_service: KnowledgeBaseService,
        statuses: Optional[StatusMap] = None,
        poll_interval: float = DEFAULT_INTERVAL_SECONDS,
        poll_max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        self.connection_id = connection_id
        self.kb_service = kb_service
        self.statuses = statuses if statuses is not None else StatusMap()
        self.selection = SelectionTracker()
        self.pollers = PollerRegistry()
        self.poll_interval = poll_interval
        self.poll_max_attempts = poll_max_attempts
        self.current_folder_id: Optional[str] = None

        self._kb: Optional[KnowledgeBase] = None
        self._members: set[str] = set()
        # Resources seen through this session, for folder-membership inheritance
        self._known: dict[str, Resource] = {}

    # ------------------------------------------------------------------
    # Knowledge base and membership
    # ------------------------------------------------------------------

    async def knowledge_base(self) -> KnowledgeBase:
        if self._kb is None:
            self._kb = await self.kb_service.get_or_create(self.connection_id)
            self._members = set(self._kb.connection_source_ids)
        return self._kb

    @property
    def knowledge_base_id(self) -> Optional[str]:
        return self._kb.knowledge_base_id if self._kb else None

    @property
    def members(self) -> set[str]:
        return set(self._members)

    def _set_members(self, members: set[str]) -> None:
        self._members = set(members)

    def remember(self, resources: Iterable[Resource]) -> None:
        for resource in resources:
            self._known[resource.resource_id] = resource

    def is_member(self, resource: Resource) -> bool:
        """Direct member, or inside a member folder."""
        if resource.resource_id in self._members:
            return True
        path = resource.absolute_path
        for rid in self._members:
            folder = self._known.get(rid)
            if folder is not None and folder.is_directory:
                if path.startswith(f"{folder.absolute_path.rstrip('/')}/"):
                    return True
        return False

    # ------------------------------------------------------------------
    # Status reconciliation
    # ------------------------------------------------------------------

    async def sync_statuses(self, resources: Iterable[Resource]) -> dict[str, ResourceStatus]:
        """Rebuild statuses for ``resources`` from the remote signals.

        Resources in an in-progress state are left to their poller. Members
        that are not yet listed are put in an indexing state and polled.
        """
        resources = list(resources)
        self.remember(resources)
        kb = await self.knowledge_base()
        try:
            self._kb = await self.kb_service.get(kb.knowledge_base_id)
        except NotFoundError:
            # Deleted upstream; the next call finds or creates a new one
            self._kb = None
            self.kb_service.forget(self.connection_id)
            raise
        self._members = set(self._kb.connection_source_ids)

        by_parent: dict[str, list[Resource]] = defaultdict(list)
        for resource in resources:
            by_parent[parent_path(resource.absolute_path)].append(resource)

        present: set[str] = set()
        for prefix in by_parent:
            present.update(
                await self.kb_service.get_indexed_paths(self._kb.knowledge_base_id, prefix)
            )

        for resource in resources:
            rid = resource.resource_id
            current = self.statuses.get(rid)
            if current.state in IN_PROGRESS_STATES:
                continue
            state = derive_state(
                self.is_member(resource),
                resource.absolute_path in present,
                resource.is_directory,
            )
            if current.state == IndexingState.FAILED and state in POLLING_STATES:
                # Stays failed until the user retries
                continue
            self.statuses.reset(rid, ResourceStatus(state=state))
            if state in POLLING_STATES:
                self._start_poller(resource)

        return {r.resource_id: self.statuses.get(r.resource_id) for r in resources}

    def _start_poller(self, resource: Resource) -> ResourcePoller:
        poller = ResourcePoller(
            resource,
            self._kb.knowledge_base_id,
            self.kb_service.get_indexed_paths,
            self.statuses,
            is_member=lambda: self.is_member(resource),
            interval=self.poll_interval,
            max_attempts=self.poll_max_attempts,
        )
        return self.pollers.start(poller)

    def _require_transition(self, resource_id: str, target: IndexingState) -> None:
        current = self.statuses.state(resource_id)
        if target not in TRANSITIONS[current]:
            raise InvalidTransitionError(resource_id, current, target)

    def _status_update(self, resource_ids: list[str]) -> OptimisticUpdate:
        def restore(snapshot: dict[str, ResourceStatus]) -> None:
            for rid, status in snapshot.items():
                self.statuses.reset(rid, status)

        return OptimisticUpdate(
            lambda: {rid: self.statuses.get(rid) for rid in resource_ids},
            restore,
            label=f"statuses of {len(resource_ids)} resource(s)",
        )

    def _membership_update(self) -> OptimisticUpdate:
        return OptimisticUpdate(lambda: set(self._members), self._set_members, label="membership")

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    async def index(self, resource: Resource) -> SyncOutcome:
        """Add one resource to the knowledge base and start polling it.

        Raises:
            InvalidTransitionError: If the resource is not pristine or failed.
            IndexingServiceError: If the add call is rejected; status and
                membership are reverted first.
        """
        return await self._index_many([resource])

    async def retry(self, resource: Resource) -> SyncOutcome:
        """Re-run indexing for a failed resource."""
        if self.statuses.state(resource.resource_id) != IndexingState.FAILED:
            raise InvalidTransitionError(
                resource.resource_id,
                self.statuses.state(resource.resource_id),
                IndexingState.INDEXING_FOLDER if resource.is_directory else IndexingState.INDEXING,
            )
        return await self._index_many([resource])

    def indexable_selection(self) -> list[Resource]:
        """Selected files that can start indexing (pristine or failed)."""
        return [
            r for r in self.selection.get_selected_files()
            if self.statuses.state(r.resource_id) in (IndexingState.PRISTINE, IndexingState.FAILED)
        ]

    async def index_selected(self) -> Optional[SyncOutcome]:
        """Index every selected file in one call.

        Directories in the selection are ignored. Resources already in
        progress or indexed are skipped. The selection is cleared on success.
        """
        files = self.indexable_selection()
        if not files:
            logger.info("No indexable files selected")
            return None
        outcome = await self._index_many(files)
        self.selection.clear()
        return outcome

    async def _index_many(self, resources: list[Resource]) -> SyncOutcome:
        targets = {
            r.resource_id: IndexingState.INDEXING_FOLDER if r.is_directory else IndexingState.INDEXING
            for r in resources
        }
        for rid, target in targets.items():
            current = self.statuses.state(rid)
            if current not in (IndexingState.PRISTINE, IndexingState.FAILED):
                raise InvalidTransitionError(rid, current, target)

        self.remember(resources)
        kb = await self.knowledge_base()
        ids = list(targets)

        async with self._status_update(ids), self._membership_update() as membership:
            for rid, target in targets.items():
                self.statuses.transition(rid, target)
            membership.apply(lambda members: members | set(ids))
            outcome = await self.kb_service.add_resources(kb.knowledge_base_id, ids)
            membership.commit(set(outcome.connection_source_ids))

        for resource in resources:
            self._start_poller(resource)
        logger.info(f"Indexing {len(resources)} resource(s) in {kb.knowledge_base_id}")
        return outcome

    async def deindex(self, resource: Resource) -> SyncOutcome:
        """Remove an indexed resource from the knowledge base.

        Raises:
            InvalidTransitionError: If the resource is not indexed, or is
                indexed only as part of a member folder.
            IndexingServiceError: If the remove call is rejected; the
                resource returns to its previous indexed state.
        """
        rid = resource.resource_id
        self._require_transition(rid, IndexingState.DEINDEXING)
        self.remember([resource])
        kb = await self.knowledge_base()
        if rid not in self._members:
            raise InvalidTransitionError(
                rid,
                self.statuses.state(rid),
                IndexingState.DEINDEXING,
                reason="it is indexed through a folder; de-index the folder instead",
            )
        self.pollers.cancel(rid)

        async with self._status_update([rid]), self._membership_update() as membership:
            self.statuses.transition(rid, IndexingState.DEINDEXING)
            membership.apply(lambda members: members - {rid})
            outcome = await self.kb_service.remove_resource(kb.knowledge_base_id, rid)
            membership.commit(set(outcome.connection_source_ids))

        self.statuses.transition(rid, IndexingState.PRISTINE)
        try:
            await self.kb_service.unindex(kb.knowledge_base_id, resource.absolute_path)
        except IndexingServiceError as e:
            # Membership is already gone; the listing entry is dropped on the next sync
            logger.warning(f"Could not drop {resource.path} from the index listing: {e.message}")
        return outcome

    def toggle_selection(self, resource: Resource) -> bool:
        self.remember([resource])
        return self.selection.toggle(resource)

    def set_selection(self, resources: Iterable[Resource]) -> None:
        """Replace the selection with ``resources``."""
        resources = list(resources)
        self.remember(resources)
        self.selection.select_multiple(resources)

    def clear_selection(self) -> None:
        self.selection.clear()

    def navigate(self, folder_id: Optional[str]) -> None:
        """Enter a folder (``None`` for the root); the selection does not carry over."""
        self.current_folder_id = folder_id
        self.selection.clear()

    async def close(self) -> int:
        cancelled = self.pollers.cancel_all()
        logger.info(f"Closed session for {self.connection_id} ({cancelled} poller(s) cancelled)")
        return cancelled


class SessionRegistry:
    """One indexing session per connection."""

    def __init__(
        self,
        kb_service: KnowledgeBaseService,
        poll_interval: float = DEFAULT_INTERVAL_SECONDS,
        poll_max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        self.kb_service = kb_service
        self.poll_interval = poll_interval
        self.poll_max_attempts = poll_max_attempts
        self._sessions: dict[str, IndexingSession] = {}

    def get(self, connection_id: str) -> Optional[IndexingSession]:
        return self._sessions.get(connection_id)

    def get_or_create(self, connection_id: str) -> IndexingSession:
        session = self._sessions.get(connection_id)
        if session is None:
            session = IndexingSession(
                connection_id,
                self.kb_service,
                poll_interval=self.poll_interval,
                poll_max_attempts=self.poll_max_attempts,
            )
            self._sessions[connection_id] = session
            logger.info(f"Opened indexing session for {connection_id}")
        return session

    async def close(self, connection_id: str) -> bool:
        session = self._sessions.pop(connection_id, None)
        if session is None:
            return False
        await session.close()
        return True

    async def close_all(self) -> int:
        sessions = list(self._sessions.values())
        self._sessions.clear()
        for session in sessions:
            await session.close()
        return len(sessions)

    def __len__(self) -> int:
        return len(self._sessions)
