"""Filtering and sorting for resource listings."""

from datetime import datetime, timezone
from typing import Iterable

from ..gateway.models import Resource

TYPE_FILTERS = ("all", "files", "folders")

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _matches_type(resource: Resource, type_filter: str) -> bool:
    if type_filter == "all":
        return True
    if type_filter == "files":
        return not resource.is_directory
    if type_filter == "folders":
        return resource.is_directory
    return not resource.is_directory and resource.extension == type_filter.lstrip(".").lower()


def filter_resources(
    resources: Iterable[Resource],
    search_query: str = "",
    type_filter: str = "all",
) -> list[Resource]:
    """Keep resources whose name contains every search term.

    Args:
        resources: Resources to filter.
        search_query: Whitespace-separated terms, matched case-insensitively.
        type_filter: ``all``, ``files``, ``folders`` or a file extension.

    Returns:
        Matching resources in their original order.
    """
    terms = search_query.lower().split()
    type_filter = (type_filter or "all").lower()
    return [
        r for r in resources
        if all(term in r.name.lower() for term in terms) and _matches_type(r, type_filter)
    ]


def _timestamp(resource: Resource) -> datetime:
    value = resource.modified_at or resource.created_at
    if value is None:
        return _EPOCH
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def sort_resources(
    resources: Iterable[Resource],
    sort_by: str = "name",
    direction: str = "asc",
) -> list[Resource]:
    """Directories first, then by name or date.

    ``direction`` only reverses the order within each group.
    """
    if sort_by not in ("name", "date"):
        raise ValueError(f"Unknown sort field: {sort_by}")
    reverse = direction == "desc"

    def key(r: Resource):
        return _timestamp(r) if sort_by == "date" else r.name.lower()

    items = list(resources)
    folders = sorted((r for r in items if r.is_directory), key=key, reverse=reverse)
    files = sorted((r for r in items if not r.is_directory), key=key, reverse=reverse)
    return folders + files


def available_extensions(resources: Iterable[Resource]) -> list[str]:
    """Sorted distinct file extensions, for the type filter options."""
    return sorted({r.extension for r in resources if not r.is_directory and r.extension})
