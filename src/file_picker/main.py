"""File Picker - FastAPI application.

Browses a connected cloud-storage account through the Indexing Service,
adds files and folders to a knowledge base and tracks their indexing
status until they are searchable.
"""

import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .api import auth, connections, knowledge_base, knowledge_bases, organizations, sessions

logger = logging.getLogger(__name__)

app = FastAPI(
    title="File Picker",
    description="Browse a storage connection and manage what is indexed "
                "in its knowledge base.",
    version=__version__,
)

# CORS middleware for the browser front end
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(auth.router)
app.include_router(connections.router)
app.include_router(knowledge_base.router)
app.include_router(knowledge_bases.router)
app.include_router(organizations.router)
app.include_router(sessions.router)


@app.on_event("startup")
async def startup_event():
    """Initialize logging from settings."""
    from .core.logging_config import setup_logging
    from .core.settings import get_settings

    settings = get_settings()
    setup_logging(settings.log_level, log_dir=settings.log_dir)
    if not settings.email or not settings.password:
        logger.warning("Service-account credentials are not set; Indexing Service calls will fail")


@app.on_event("shutdown")
async def shutdown_event():
    """Cancel every status poller and drop cached knowledge bases."""
    from .api.deps import get_kb_service, get_session_registry

    closed = await get_session_registry().close_all()
    if closed:
        logger.info(f"Closed {closed} indexing session(s)")
    get_kb_service().cache.clear()


@app.get("/")
def root() -> dict[str, str]:
    """Root endpoint returning service info.

    Returns:
        dict: Status, name and version.
    """
    return {
        "status": "ok",
        "message": "File Picker",
        "version": __version__,
        "docs": "/docs",
    }


@app.get("/health")
def health() -> dict[str, str]:
    """Health check endpoint for monitoring and load balancers.

    Returns:
        dict: Health status indicator.
    """
    return {"status": "healthy"}


def run() -> None:
    """Run the app with uvicorn (``HOST``/``PORT`` from the environment)."""
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    host = os.getenv("HOST", "127.0.0.1")
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run()
