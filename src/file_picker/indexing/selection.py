"""Selection tracker.

Keeps the set of checked resources across page changes. Full resource
objects are kept alongside the IDs so a batch action can restrict itself
to files.
"""

from typing import Iterable

from ..gateway.models import Resource


class SelectionTracker:
    """Tracks selected resources by ``resource_id``."""

    def __init__(self):
        self._selected: dict[str, Resource] = {}

    def toggle(self, resource: Resource) -> bool:
        """Flip a resource's selection.

        Returns:
            True if the resource is selected afterwards.
        """
        if resource.resource_id in self._selected:
            del self._selected[resource.resource_id]
            return False
        self._selected[resource.resource_id] = resource
        return True

    def select_multiple(self, resources: Iterable[Resource]) -> None:
        """Replace the selection with ``resources``."""
        self._selected = {r.resource_id: r for r in resources}

    def clear(self) -> None:
        self._selected.clear()

    def is_selected(self, resource_id: str) -> bool:
        return resource_id in self._selected

    def get_selected_files(self) -> list[Resource]:
        """Selected resources that are files (directories dropped)."""
        return [r for r in self._selected.values() if not r.is_directory]

    @property
    def selected_ids(self) -> set[str]:
        return set(self._selected)

    @property
    def selected_resources(self) -> list[Resource]:
        return list(self._selected.values())

    def __len__(self) -> int:
        return len(self._selected)
