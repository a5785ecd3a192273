"""API module for the file picker.

FastAPI route definitions for the Indexing Service proxy and the
indexing sessions.
"""

from . import auth, connections, knowledge_base, knowledge_bases, organizations, sessions
