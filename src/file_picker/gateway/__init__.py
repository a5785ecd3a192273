"""Gateway to the Indexing Service.

Holds the error taxonomy and wire models. The HTTP client and token
provider live in ``gateway.client`` and ``gateway.auth``.
"""

from .errors import (
    IndexingServiceError,
    ConfigurationError,
    AuthenticationError,
    TransientError,
    UpstreamError,
    NotFoundError,
)
from .models import (
    Resource,
    InodePath,
    InodeType,
    Connection,
    KnowledgeBase,
    KnowledgeBaseCreate,
    IndexingParams,
    ChildrenPage,
    SyncOutcome,
    ensure_absolute_path,
)

__all__ = [
    "IndexingServiceError",
    "ConfigurationError",
    "AuthenticationError",
    "TransientError",
    "UpstreamError",
    "NotFoundError",
    "Resource",
    "InodePath",
    "InodeType",
    "Connection",
    "KnowledgeBase",
    "KnowledgeBaseCreate",
    "IndexingParams",
    "ChildrenPage",
    "SyncOutcome",
    "ensure_absolute_path",
]
