"""Auth API Router - Exposes the server-side bearer token header."""

from fastapi import APIRouter, Depends

from ..gateway.client import IndexingServiceClient
from ..gateway.errors import IndexingServiceError
from .deps import get_client, http_error

router = APIRouter(tags=["auth"])


@router.post("/auth")
async def get_auth_headers(
    client: IndexingServiceClient = Depends(get_client),
) -> dict[str, str]:
    """Authenticate with the service account and return the header to use.

    Returns:
        ``{"Authorization": "Bearer <token>"}``
    """
    try:
        return await client.tokens.auth_headers()
    except IndexingServiceError as e:
        raise http_error(e) from e
