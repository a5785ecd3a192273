"""File Picker - browse a storage connection and index it into a knowledge base.

A FastAPI service that proxies the Indexing Service API with server-side
credentials and tracks per-resource indexing status while remote sync jobs
run.
"""

__version__ = "0.1.0"
