"""Client-side indexing state: selection, statuses, pollers and sessions."""

from .browse import available_extensions, filter_resources, sort_resources
from .optimistic import OptimisticUpdate
from .poller import PollerRegistry, ResourcePoller
from .selection import SelectionTracker
from .session import IndexingSession, SessionRegistry
from .status import (
    INDEXED_STATES,
    IN_PROGRESS_STATES,
    POLLING_STATES,
    IndexingState,
    InvalidTransitionError,
    ResourceStatus,
    StatusMap,
    derive_state,
)

__all__ = [
    "available_extensions",
    "filter_resources",
    "sort_resources",
    "OptimisticUpdate",
    "PollerRegistry",
    "ResourcePoller",
    "SelectionTracker",
    "IndexingSession",
    "SessionRegistry",
    "INDEXED_STATES",
    "IN_PROGRESS_STATES",
    "POLLING_STATES",
    "IndexingState",
    "InvalidTransitionError",
    "ResourceStatus",
    "StatusMap",
    "derive_state",
]
