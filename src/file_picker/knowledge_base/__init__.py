"""Knowledge base client and connection cache."""

from .cache import KnowledgeBaseCache
from .service import KnowledgeBaseService, default_knowledge_base_request

__all__ = [
    "KnowledgeBaseCache",
    "KnowledgeBaseService",
    "default_knowledge_base_request",
]
