"""Shared dependencies for the API routers.

Lazily built process-wide instances of the gateway client, knowledge base
service and session registry, plus the mapping from gateway errors to
HTTP responses.
"""

import logging
from typing import Optional

from fastapi import HTTPException

from ..core.settings import get_settings
from ..gateway.client import IndexingServiceClient
from ..gateway.errors import IndexingServiceError
from ..indexing.session import SessionRegistry
from ..indexing.status import InvalidTransitionError
from ..knowledge_base.cache import KnowledgeBaseCache
from ..knowledge_base.service import KnowledgeBaseService

logger = logging.getLogger(__name__)

# Global instances
_client: Optional[IndexingServiceClient] = None
_kb_service: Optional[KnowledgeBaseService] = None
_sessions: Optional[SessionRegistry] = None


def get_client() -> IndexingServiceClient:
    """Get or create the Indexing Service client."""
    global _client
    if _client is None:
        _client = IndexingServiceClient(get_settings())
    return _client


def get_kb_service() -> KnowledgeBaseService:
    """Get or create the knowledge base service (with its process-wide cache)."""
    global _kb_service
    if _kb_service is None:
        _kb_service = KnowledgeBaseService(
            get_client(),
            cache=KnowledgeBaseCache(),
            org_id=get_settings().org_id,
        )
    return _kb_service


def get_session_registry() -> SessionRegistry:
    """Get or create the indexing session registry."""
    global _sessions
    if _sessions is None:
        settings = get_settings()
        _sessions = SessionRegistry(
            get_kb_service(),
            poll_interval=settings.poll_interval_seconds,
            poll_max_attempts=settings.poll_max_attempts,
        )
    return _sessions


def reset_dependencies() -> None:
    """Drop the cached instances (sessions must be closed first)."""
    global _client, _kb_service, _sessions
    _client = None
    _kb_service = None
    _sessions = None


def http_error(error: Exception) -> HTTPException:
    """Translate a gateway or state-machine error into an HTTP error.

    Upstream statuses are passed through unchanged; the body is
    ``{"message": ..., "details": ...}``.
    """
    if isinstance(error, InvalidTransitionError):
        return HTTPException(status_code=409, detail={"message": str(error)})
    if isinstance(error, IndexingServiceError):
        if error.status_code >= 500:
            logger.error(f"Indexing Service error ({error.status_code}): {error.message}")
        return HTTPException(status_code=error.status_code, detail=error.to_dict())
    raise TypeError(f"Unsupported error type: {type(error).__name__}")
