"""Per-resource indexing status and its state machine.

A resource's status is ephemeral: it is rebuilt from two remote signals
(membership in ``connection_source_ids`` and presence of its path in the
live index listing) and advanced by user actions and the status poller.

    pristine --index--> indexing | indexing-folder
    indexing --path appears--> indexed
    indexing-folder --children stable--> indexed-full
    indexing-folder --budget exhausted--> indexed-partial
    indexing | indexing-folder --poll error--> failed
    indexed* --de-index--> deindexing --ok--> pristine
    deindexing --rejected--> indexed* (revert)
    failed --retry--> indexing | indexing-folder
"""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Callable, Optional
import logging

logger = logging.getLogger(__name__)


class IndexingState(str, Enum):
    """Indexing status of a single resource."""

    PRISTINE = "pristine"
    INDEXING = "indexing"
    INDEXING_FOLDER = "indexing-folder"
    INDEXED = "indexed"
    INDEXED_FULL = "indexed-full"
    INDEXED_PARTIAL = "indexed-partial"
    FAILED = "failed"
    DEINDEXING = "deindexing"


POLLING_STATES = frozenset({IndexingState.INDEXING, IndexingState.INDEXING_FOLDER})
IN_PROGRESS_STATES = POLLING_STATES | {IndexingState.DEINDEXING}
INDEXED_STATES = frozenset({
    IndexingState.INDEXED,
    IndexingState.INDEXED_FULL,
    IndexingState.INDEXED_PARTIAL,
})

_S = IndexingState

# Legal edges. Self-edges on the polling states carry progress updates;
# polling -> pristine/failed reverts a rejected add call.
TRANSITIONS: dict[IndexingState, frozenset[IndexingState]] = {
    _S.PRISTINE: frozenset({_S.INDEXING, _S.INDEXING_FOLDER}),
    _S.INDEXING: frozenset({_S.INDEXING, _S.INDEXED, _S.FAILED, _S.PRISTINE}),
    _S.INDEXING_FOLDER: frozenset({
        _S.INDEXING_FOLDER, _S.INDEXED_FULL, _S.INDEXED_PARTIAL, _S.FAILED, _S.PRISTINE,
    }),
    _S.INDEXED: frozenset({_S.DEINDEXING}),
    _S.INDEXED_FULL: frozenset({_S.DEINDEXING}),
    _S.INDEXED_PARTIAL: frozenset({_S.DEINDEXING}),
    _S.DEINDEXING: frozenset({_S.PRISTINE}) | INDEXED_STATES,
    _S.FAILED: frozenset({_S.INDEXING, _S.INDEXING_FOLDER}),
}


class InvalidTransitionError(Exception):
    """Raised when a status change is not an edge of the state machine."""

    def __init__(
        self,
        resource_id: str,
        current: IndexingState,
        target: IndexingState,
        reason: Optional[str] = None,
    ):
        self.resource_id = resource_id
        self.current = current
        self.target = target
        message = f"Resource '{resource_id}' cannot go from {current.value} to {target.value}"
        super().__init__(f"{message}: {reason}" if reason else message)


@dataclass(frozen=True)
class ResourceStatus:
    """Status of one resource as shown to the user."""

    state: IndexingState = IndexingState.PRISTINE
    files_processed: Optional[int] = None
    total_files: Optional[int] = None
    error: Optional[str] = None

    @property
    def is_polling(self) -> bool:
        return self.state in POLLING_STATES

    @property
    def is_indexed(self) -> bool:
        return self.state in INDEXED_STATES

    def to_dict(self) -> dict:
        data = asdict(self)
        data["state"] = self.state.value
        return data


PRISTINE = ResourceStatus()


def derive_state(is_member: bool, path_present: bool, is_folder: bool) -> IndexingState:
    """Status implied by the two remote signals.

    Args:
        is_member: The resource (or a member folder containing it) is in
            ``connection_source_ids``.
        path_present: Its path appears in the live index listing.
        is_folder: Whether the resource is a directory.

    Returns:
        ``indexed``/``indexed-full`` when both agree, an in-progress state
        when it is a member not yet listed, ``pristine`` otherwise. A
        listed non-member is a removal still lingering in the listing.
    """
    if not is_member:
        return IndexingState.PRISTINE
    if path_present:
        return IndexingState.INDEXED_FULL if is_folder else IndexingState.INDEXED
    return IndexingState.INDEXING_FOLDER if is_folder else IndexingState.INDEXING


StatusListener = Callable[[str, ResourceStatus, ResourceStatus], None]


class StatusMap:
    """Shared ``resource_id -> ResourceStatus`` map.

    All mutations are synchronous, so under a single event loop each
    transition is atomic and per-key writes are last-write-wins. Pollers
    for different resources write different keys.

    Example:
        >>> statuses = StatusMap()
        >>> statuses.transition("r1", IndexingState.INDEXING)
        >>> statuses.state("r1")
        <IndexingState.INDEXING: 'indexing'>
    """

    def __init__(self):
        self._statuses: dict[str, ResourceStatus] = {}
        self._listeners: list[StatusListener] = []

    def get(self, resource_id: str) -> ResourceStatus:
        return self._statuses.get(resource_id, PRISTINE)

    def state(self, resource_id: str) -> IndexingState:
        return self.get(resource_id).state

    def transition(
        self,
        resource_id: str,
        state: IndexingState,
        files_processed: Optional[int] = None,
        total_files: Optional[int] = None,
        error: Optional[str] = None,
    ) -> ResourceStatus:
        """Move a resource along a legal edge.

        Raises:
            InvalidTransitionError: If the edge is not in the state machine.
        """
        current = self.get(resource_id)
        if state not in TRANSITIONS[current.state]:
            raise InvalidTransitionError(resource_id, current.state, state)
        new = ResourceStatus(
            state=state,
            files_processed=files_processed,
            total_files=total_files,
            error=error,
        )
        self._write(resource_id, current, new)
        return new

    def reset(self, resource_id: str, status: ResourceStatus) -> ResourceStatus:
        """Write a status rebuilt from remote signals or a snapshot, skipping edge checks."""
        self._write(resource_id, self.get(resource_id), status)
        return status

    def discard(self, resource_id: str) -> None:
        self._statuses.pop(resource_id, None)

    def clear(self) -> None:
        self._statuses.clear()

    def snapshot(self) -> dict[str, ResourceStatus]:
        return dict(self._statuses)

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """Register a change listener.

        Returns:
            Function that removes the listener.
        """
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _write(self, resource_id: str, old: ResourceStatus, new: ResourceStatus) -> None:
        if new == PRISTINE:
            self._statuses.pop(resource_id, None)
        else:
            self._statuses[resource_id] = new
        if old.state != new.state:
            logger.debug(f"{resource_id}: {old.state.value} -> {new.state.value}")
        for listener in list(self._listeners):
            try:
                listener(resource_id, old, new)
            except Exception:
                logger.exception(f"Status listener failed for {resource_id}")

    def __contains__(self, resource_id: str) -> bool:
        return resource_id in self._statuses

    def __len__(self) -> int:
        return len(self._statuses)
