"""Optimistic update helper.

Apply a local change before the remote call, keep it when the call
succeeds, restore the snapshot when it raises.
"""

import logging
from typing import Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_UNSET = object()


class OptimisticUpdate(Generic[T]):
    """Snapshot / apply / commit-or-revert around a remote call.

    Example:
        async with OptimisticUpdate(lambda: set(members), set_members) as update:
            update.apply(lambda m: m | {resource_id})
            outcome = await service.add_resources(kb_id, [resource_id])
            update.commit(set(outcome.connection_source_ids))

    Any exception raised inside the block restores the snapshot and is
    re-raised unchanged.
    """

    def __init__(self, getter: Callable[[], T], setter: Callable[[T], None], label: str = ""):
        self._get = getter
        self._set = setter
        self.label = label
        self.snapshot: Optional[T] = None
        self.value: Optional[T] = None
        self._committed = _UNSET

    async def __aenter__(self) -> "OptimisticUpdate[T]":
        self.snapshot = self._get()
        self.value = self.snapshot
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None:
            self._set(self.snapshot)
            self.value = self.snapshot
            logger.info(f"Reverted optimistic update {self.label}".rstrip())
            return False
        if self._committed is not _UNSET:
            self._set(self._committed)
            self.value = self._committed
        return False

    def apply(self, fn: Callable[[T], T]) -> T:
        """Write ``fn(current)`` as the optimistic value."""
        self.value = fn(self.value)
        self._set(self.value)
        return self.value

    def commit(self, value: T) -> None:
        """Replace the optimistic value with the confirmed one on exit."""
        self._committed = value
