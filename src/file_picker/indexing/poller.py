"""Per-resource status polling.

After a resource is added to a knowledge base and a sync is triggered, a
poller watches the live index listing until the resource shows up, the
attempt budget runs out, or the resource leaves a polling state.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from ..gateway.errors import IndexingServiceError, TransientError
from ..gateway.models import Resource, parent_path
from .status import IndexingState, StatusMap

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 2.0
DEFAULT_MAX_ATTEMPTS = 30

# Consecutive polls with the same child count before a folder counts as done
FOLDER_STABLE_POLLS = 2

FetchPaths = Callable[[str, str], Awaitable[list[str]]]


class ResourcePoller:
    """Polls the indexed-path listing for one resource.

    A file is ``indexed`` once it is a member and its path is in the
    listing of its parent directory. A folder is ``indexed-full`` once its
    child count is non-zero and unchanged across consecutive polls; on
    budget exhaustion it is ``indexed-partial`` if any children were seen.

    Transient errors use up an attempt and are retried; any other error
    fails the resource immediately, so a finished poller always leaves a
    terminal state behind.
    """

    def __init__(
        self,
        resource: Resource,
        knowledge_base_id: str,
        fetch_paths: FetchPaths,
        statuses: StatusMap,
        is_member: Optional[Callable[[], bool]] = None,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        """Initialize poller.

        Args:
            resource: The resource being indexed.
            knowledge_base_id: Knowledge base to watch.
            fetch_paths: ``(kb_id, path_prefix) -> indexed absolute paths``.
            statuses: Shared status map the poller writes to.
            is_member: Current membership check (assumed True if omitted).
            interval: Seconds between polls.
            max_attempts: Poll budget.
        """
        self.resource = resource
        self.knowledge_base_id = knowledge_base_id
        self._fetch = fetch_paths
        self.statuses = statuses
        self._is_member = is_member or (lambda: True)
        self.interval = interval
        self.max_attempts = max_attempts
        self.attempts = 0
        self._task: Optional[asyncio.Task] = None
        self._last_count: Optional[int] = None
        self._stable_polls = 0
        self._max_seen = 0

    @property
    def resource_id(self) -> str:
        return self.resource.resource_id

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    def start(self) -> asyncio.Task:
        if self._task is None:
            self._task = asyncio.create_task(
                self._run(), name=f"poll-{self.resource_id}"
            )
        return self._task

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
            logger.debug(f"Cancelled poller for {self.resource_id}")

    async def wait(self) -> None:
        """Wait until the poller finishes or is cancelled."""
        if self._task is not None:
            await asyncio.wait({self._task})

    def _polling(self) -> bool:
        return self.statuses.get(self.resource_id).is_polling

    async def _run(self) -> None:
        try:
            await self._poll()
        except Exception as e:
            logger.exception(f"Status poller for {self.resource_id} stopped unexpectedly")
            if self._polling():
                self._fail(f"Status check failed: {e}")

    async def _poll(self) -> None:
        resource = self.resource
        if resource.is_directory:
            prefix = resource.absolute_path.rstrip("/")
        else:
            prefix = parent_path(resource.absolute_path)

        while self.attempts < self.max_attempts:
            await asyncio.sleep(self.interval)
            if not self._polling():
                return
            self.attempts += 1

            try:
                paths = await self._fetch(self.knowledge_base_id, prefix)
            except TransientError as e:
                logger.warning(
                    f"Status poll for {self.resource_id} failed "
                    f"(attempt {self.attempts}/{self.max_attempts}): {e.message}"
                )
                continue
            except IndexingServiceError as e:
                if self._polling():
                    logger.error(f"Status poll for {self.resource_id} failed: {e.message}")
                    self._fail(e.message)
                return

            if not self._polling():
                return
            if resource.is_directory:
                if self._check_folder(prefix, paths):
                    return
            elif self._is_member() and resource.absolute_path in paths:
                self.statuses.transition(self.resource_id, IndexingState.INDEXED)
                logger.info(f"{resource.path} indexed after {self.attempts} poll(s)")
                return

        if self._polling():
            self._exhausted()

    def _check_folder(self, prefix: str, paths: list[str]) -> bool:
        children = [p for p in paths if p.startswith(f"{prefix}/")]
        count = len(children)
        self._max_seen = max(self._max_seen, count)

        if count > 0 and count == self._last_count:
            self._stable_polls += 1
        else:
            self._stable_polls = 1 if count > 0 else 0
        self._last_count = count

        if self._stable_polls >= FOLDER_STABLE_POLLS and self._is_member():
            self.statuses.transition(
                self.resource_id,
                IndexingState.INDEXED_FULL,
                files_processed=count,
                total_files=count,
            )
            logger.info(f"{self.resource.path} indexed with {count} file(s)")
            return True

        self.statuses.transition(
            self.resource_id, IndexingState.INDEXING_FOLDER, files_processed=count
        )
        return False

    def _exhausted(self) -> None:
        if self.resource.is_directory and self._max_seen > 0:
            self.statuses.transition(
                self.resource_id,
                IndexingState.INDEXED_PARTIAL,
                files_processed=self._max_seen,
            )
            logger.warning(
                f"{self.resource.path} still changing after {self.attempts} polls, "
                f"marking partially indexed ({self._max_seen} file(s))"
            )
            return
        self._fail(f"Indexing did not complete after {self.attempts} status checks")

    def _fail(self, message: str) -> None:
        self.statuses.transition(self.resource_id, IndexingState.FAILED, error=message)


class PollerRegistry:
    """Active pollers keyed by resource ID; at most one per resource."""

    def __init__(self):
        self._pollers: dict[str, ResourcePoller] = {}

    def start(self, poller: ResourcePoller) -> ResourcePoller:
        """Start ``poller``, cancelling any poller already running for its resource."""
        self.cancel(poller.resource_id)
        self._pollers[poller.resource_id] = poller
        task = poller.start()
        task.add_done_callback(lambda _: self._forget(poller))
        return poller

    def _forget(self, poller: ResourcePoller) -> None:
        if self._pollers.get(poller.resource_id) is poller:
            del self._pollers[poller.resource_id]

    def get(self, resource_id: str) -> Optional[ResourcePoller]:
        return self._pollers.get(resource_id)

    def cancel(self, resource_id: str) -> bool:
        poller = self._pollers.pop(resource_id, None)
        if poller is None:
            return False
        poller.cancel()
        return True

    def cancel_all(self) -> int:
        """Cancel every poller; returns how many were running."""
        pollers = list(self._pollers.values())
        self._pollers.clear()
        for poller in pollers:
            poller.cancel()
        if pollers:
            logger.info(f"Cancelled {len(pollers)} poller(s)")
        return len(pollers)

    @property
    def active_ids(self) -> list[str]:
        return [rid for rid, p in self._pollers.items() if not p.done]

    def __len__(self) -> int:
        return len(self._pollers)
