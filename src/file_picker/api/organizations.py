"""Organizations API Router."""

from typing import Any

from fastapi import APIRouter, Depends

from ..gateway.client import IndexingServiceClient
from ..gateway.errors import IndexingServiceError
from .deps import get_client, http_error

router = APIRouter(prefix="/organizations", tags=["organizations"])


@router.get("/me/current")
async def get_current_organization(
    client: IndexingServiceClient = Depends(get_client),
) -> dict[str, Any]:
    try:
        return await client.get_current_organization()
    except IndexingServiceError as e:
        raise http_error(e) from e
