"""Sessions API Router - Drives the per-resource indexing state machine.

Each connection gets one server-side session holding the selection, the
resource statuses and the status pollers. Actions update statuses
optimistically and revert them when the Indexing Service rejects the call.
"""

import logging

from fastapi import APIRouter, Depends

from ..gateway.errors import IndexingServiceError
from ..indexing.session import IndexingSession, SessionRegistry
from ..indexing.status import InvalidTransitionError
from .deps import get_session_registry, http_error
from .schemas import (
    IndexSelectedResponse,
    NavigateRequest,
    ResourceActionRequest,
    ResourceActionResponse,
    ResourceStatusModel,
    SelectionResponse,
    SelectionSetRequest,
    SessionClosedResponse,
    StatusesResponse,
    StatusSyncRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])


def _selection(session: IndexingSession) -> SelectionResponse:
    return SelectionResponse(
        selected_ids=sorted(session.selection.selected_ids),
        count=len(session.selection),
        current_folder_id=session.current_folder_id,
    )


def _statuses(session: IndexingSession, resource_ids=None) -> StatusesResponse:
    if resource_ids is None:
        statuses = session.statuses.snapshot()
    else:
        statuses = {rid: session.statuses.get(rid) for rid in resource_ids}
    return StatusesResponse(
        connection_id=session.connection_id,
        knowledge_base_id=session.knowledge_base_id,
        statuses={rid: ResourceStatusModel.from_status(s) for rid, s in statuses.items()},
        polling=session.pollers.active_ids,
    )


def _action_response(session: IndexingSession, resource_id: str, outcome) -> ResourceActionResponse:
    return ResourceActionResponse(
        resource_id=resource_id,
        status=ResourceStatusModel.from_status(session.statuses.get(resource_id)),
        outcome=outcome,
    )


@router.post("/{connection_id}/index", response_model=ResourceActionResponse)
async def index_resource(
    connection_id: str,
    request: ResourceActionRequest,
    registry: SessionRegistry = Depends(get_session_registry),
) -> ResourceActionResponse:
    """Start indexing a pristine resource and poll until it is live."""
    session = registry.get_or_create(connection_id)
    try:
        outcome = await session.index(request.resource)
    except (IndexingServiceError, InvalidTransitionError) as e:
        raise http_error(e) from e
    return _action_response(session, request.resource.resource_id, outcome)


@router.post("/{connection_id}/retry", response_model=ResourceActionResponse)
async def retry_resource(
    connection_id: str,
    request: ResourceActionRequest,
    registry: SessionRegistry = Depends(get_session_registry),
) -> ResourceActionResponse:
    """Re-run indexing for a failed resource."""
    session = registry.get_or_create(connection_id)
    try:
        outcome = await session.retry(request.resource)
    except (IndexingServiceError, InvalidTransitionError) as e:
        raise http_error(e) from e
    return _action_response(session, request.resource.resource_id, outcome)


@router.post("/{connection_id}/deindex", response_model=ResourceActionResponse)
async def deindex_resource(
    connection_id: str,
    request: ResourceActionRequest,
    registry: SessionRegistry = Depends(get_session_registry),
) -> ResourceActionResponse:
    """Remove an indexed resource; its status returns to the indexed state on failure."""
    session = registry.get_or_create(connection_id)
    try:
        outcome = await session.deindex(request.resource)
    except (IndexingServiceError, InvalidTransitionError) as e:
        raise http_error(e) from e
    return _action_response(session, request.resource.resource_id, outcome)


@router.post("/{connection_id}/selection/toggle", response_model=SelectionResponse)
async def toggle_selection(
    connection_id: str,
    request: ResourceActionRequest,
    registry: SessionRegistry = Depends(get_session_registry),
) -> SelectionResponse:
    session = registry.get_or_create(connection_id)
    session.toggle_selection(request.resource)
    return _selection(session)


@router.post("/{connection_id}/selection/set", response_model=SelectionResponse)
async def set_selection(
    connection_id: str,
    request: SelectionSetRequest,
    registry: SessionRegistry = Depends(get_session_registry),
) -> SelectionResponse:
    """Replace the selection (e.g. select all on the current page)."""
    session = registry.get_or_create(connection_id)
    session.set_selection(request.resources)
    return _selection(session)


@router.post("/{connection_id}/selection/clear", response_model=SelectionResponse)
async def clear_selection(
    connection_id: str,
    registry: SessionRegistry = Depends(get_session_registry),
) -> SelectionResponse:
    session = registry.get_or_create(connection_id)
    session.clear_selection()
    return _selection(session)


@router.post("/{connection_id}/navigate", response_model=SelectionResponse)
async def navigate(
    connection_id: str,
    request: NavigateRequest,
    registry: SessionRegistry = Depends(get_session_registry),
) -> SelectionResponse:
    """Enter a folder; the selection is cleared."""
    session = registry.get_or_create(connection_id)
    session.navigate(request.folder_id)
    return _selection(session)


@router.post("/{connection_id}/index-selected", response_model=IndexSelectedResponse)
async def index_selected(
    connection_id: str,
    registry: SessionRegistry = Depends(get_session_registry),
) -> IndexSelectedResponse:
    """Index the selected files in one call (folders in the selection are skipped)."""
    session = registry.get_or_create(connection_id)
    ids = sorted(r.resource_id for r in session.indexable_selection())
    try:
        outcome = await session.index_selected()
    except (IndexingServiceError, InvalidTransitionError) as e:
        raise http_error(e) from e
    if outcome is None:
        return IndexSelectedResponse(message="No indexable files selected")
    return IndexSelectedResponse(indexed_ids=ids, outcome=outcome, message=outcome.message)


@router.post("/{connection_id}/statuses/sync", response_model=StatusesResponse)
async def sync_statuses(
    connection_id: str,
    request: StatusSyncRequest,
    registry: SessionRegistry = Depends(get_session_registry),
) -> StatusesResponse:
    """Rebuild statuses for the given resources from membership and the index listing."""
    session = registry.get_or_create(connection_id)
    try:
        statuses = await session.sync_statuses(request.resources)
    except IndexingServiceError as e:
        raise http_error(e) from e
    return _statuses(session, list(statuses))


@router.get("/{connection_id}/statuses", response_model=StatusesResponse)
async def get_statuses(
    connection_id: str,
    registry: SessionRegistry = Depends(get_session_registry),
) -> StatusesResponse:
    """Current non-pristine statuses; resources not listed are pristine."""
    session = registry.get_or_create(connection_id)
    return _statuses(session)


@router.delete("/{connection_id}", response_model=SessionClosedResponse)
async def close_session(
    connection_id: str,
    registry: SessionRegistry = Depends(get_session_registry),
) -> SessionClosedResponse:
    """Close a session and cancel its pollers."""
    session = registry.get(connection_id)
    if session is None:
        return SessionClosedResponse(connection_id=connection_id, closed=False)
    cancelled = len(session.pollers)
    await registry.close(connection_id)
    return SessionClosedResponse(
        connection_id=connection_id, closed=True, pollers_cancelled=cancelled
    )
