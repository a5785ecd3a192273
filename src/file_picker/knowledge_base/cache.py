"""Knowledge base cache.

Remembers which knowledge base belongs to which connection so the list /
create round-trip happens once per connection per process. Entries live
for the lifetime of the process; there is no eviction.
"""

from typing import Dict, Optional
import logging

from ..gateway.models import KnowledgeBase

logger = logging.getLogger(__name__)


class KnowledgeBaseCache:
    """In-memory cache of knowledge bases keyed by connection ID.
    
    Example:
        cache = KnowledgeBaseCache()
        cache.put("conn-1", kb)
        kb = cache.get("conn-1")
    """
    
    def __init__(self):
        """Initialize empty cache."""
        self._entries: Dict[str, KnowledgeBase] = {}
    
    def get(self, connection_id: str) -> Optional[KnowledgeBase]:
        """Get the cached knowledge base for a connection.
        
        Args:
            connection_id: The storage connection ID.
            
        Returns:
            The knowledge base if cached, None otherwise.
        """
        return self._entries.get(connection_id)
    
    def put(self, connection_id: str, knowledge_base: KnowledgeBase) -> KnowledgeBase:
        """Cache a knowledge base for a connection."""
        self._entries[connection_id] = knowledge_base
        logger.debug(
            f"Cached knowledge base {knowledge_base.knowledge_base_id} for connection {connection_id}"
        )
        return knowledge_base
    
    def invalidate(self, connection_id: str) -> bool:
        """Remove a connection's entry.
        
        Returns:
            True if removed, False if not found.
        """
        return self._entries.pop(connection_id, None) is not None
    
    def clear(self) -> int:
        """Remove all entries.
        
        Returns:
            Number of entries removed.
        """
        count = len(self._entries)
        self._entries.clear()
        logger.info(f"Cleared {count} cached knowledge bases")
        return count
