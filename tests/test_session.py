"""Tests for indexing sessions against the fake Indexing Service."""

import pytest

from file_picker.gateway.errors import NotFoundError, UpstreamError
from file_picker.indexing.session import IndexingSession, SessionRegistry
from file_picker.indexing.status import IndexingState, InvalidTransitionError

from conftest import CONNECTION_ID, make_resource, resource


def make_session(kb_service, interval=0, max_attempts=5) -> IndexingSession:
    return IndexingSession(
        CONNECTION_ID, kb_service, poll_interval=interval, poll_max_attempts=max_attempts
    )


class TestSyncStatuses:
    """Statuses rebuilt from membership and the index listing."""

    @pytest.mark.asyncio
    async def test_statuses_from_remote_signals(self, kb_service, fake_service):
        kb_id = fake_service.add_knowledge_base(CONNECTION_ID, ["f1", "f2"])["knowledge_base_id"]
        fake_service.index_path(kb_id, "f1", "/docs/a.txt")
        session = make_session(kb_service, interval=60)
        listing = [
            resource("f1", "docs/a.txt"),
            resource("f2", "docs/b.txt"),
            resource("f3", "docs/c.txt"),
        ]

        statuses = await session.sync_statuses(listing)

        assert statuses["f1"].state == IndexingState.INDEXED
        assert statuses["f2"].state == IndexingState.INDEXING
        assert statuses["f3"].state == IndexingState.PRISTINE
        assert session.pollers.active_ids == ["f2"]
        await session.close()

    @pytest.mark.asyncio
    async def test_member_missing_from_listing_is_never_pristine(self, kb_service, fake_service):
        fake_service.add_knowledge_base(CONNECTION_ID, ["f1"])
        session = make_session(kb_service, interval=60)

        statuses = await session.sync_statuses([resource("f1", "a.txt")])

        assert statuses["f1"].state != IndexingState.PRISTINE
        await session.close()

    @pytest.mark.asyncio
    async def test_children_inherit_folder_membership(self, kb_service, fake_service):
        fake_service.add_knowledge_base(CONNECTION_ID, ["d1"])
        session = make_session(kb_service, interval=60)
        session.remember([resource("d1", "docs", directory=True)])

        statuses = await session.sync_statuses([
            resource("c1", "docs/inner.txt"),
            resource("c2", "docsish/outer.txt"),
        ])

        assert statuses["c1"].state == IndexingState.INDEXING
        assert statuses["c2"].state == IndexingState.PRISTINE
        await session.close()

    @pytest.mark.asyncio
    async def test_deleted_knowledge_base_is_forgotten(self, kb_service, fake_service):
        kb_id = fake_service.add_knowledge_base(CONNECTION_ID)["knowledge_base_id"]
        session = make_session(kb_service)
        await session.sync_statuses([resource("f1", "a.txt")])
        del fake_service.knowledge_bases[kb_id]

        with pytest.raises(NotFoundError):
            await session.sync_statuses([resource("f1", "a.txt")])

        assert session.knowledge_base_id is None
        assert kb_service.cache.get(CONNECTION_ID) is None

    @pytest.mark.asyncio
    async def test_polling_resources_are_left_alone(self, kb_service, fake_service):
        fake_service.add_knowledge_base(CONNECTION_ID)
        session = make_session(kb_service, interval=60)
        session.statuses.transition("f1", IndexingState.INDEXING)

        statuses = await session.sync_statuses([resource("f1", "a.txt")])

        assert statuses["f1"].state == IndexingState.INDEXING


class TestIndex:
    """Indexing a resource and polling it to completion."""

    @pytest.mark.asyncio
    async def test_index_file(self, kb_service, fake_service):
        file = resource("f1", "docs/a.txt")
        session = make_session(kb_service)

        outcome = await session.index(file)

        kb_id = session.knowledge_base_id
        assert session.statuses.state("f1") == IndexingState.INDEXING
        assert session.members == {"f1"}
        assert outcome.sync_triggered is True
        assert fake_service.knowledge_bases[kb_id]["connection_source_ids"] == ["f1"]

        fake_service.index_path(kb_id, "f1", "/docs/a.txt")
        await session.pollers.get("f1").wait()

        assert session.statuses.state("f1") == IndexingState.INDEXED

    @pytest.mark.asyncio
    async def test_index_never_listed_fails(self, kb_service):
        session = make_session(kb_service, max_attempts=2)

        await session.index(resource("f1", "a.txt"))
        await session.pollers.get("f1").wait()

        assert session.statuses.state("f1") == IndexingState.FAILED
        assert session.members == {"f1"}

    @pytest.mark.asyncio
    async def test_rejected_add_reverts(self, kb_service, fake_service):
        kb_id = fake_service.add_knowledge_base(CONNECTION_ID)["knowledge_base_id"]
        fake_service.fail("PUT", f"/knowledge_bases/{kb_id}", 500)
        session = make_session(kb_service)

        with pytest.raises(UpstreamError):
            await session.index(resource("f1", "a.txt"))

        assert session.statuses.state("f1") == IndexingState.PRISTINE
        assert session.members == set()
        assert session.pollers.get("f1") is None

    @pytest.mark.asyncio
    async def test_index_twice_is_rejected(self, kb_service):
        session = make_session(kb_service, interval=60)
        file = resource("f1", "a.txt")
        await session.index(file)

        with pytest.raises(InvalidTransitionError):
            await session.index(file)
        await session.close()

    @pytest.mark.asyncio
    async def test_retry_from_failed(self, kb_service, fake_service):
        session = make_session(kb_service, max_attempts=1)
        file = resource("f1", "a.txt")
        await session.index(file)
        await session.pollers.get("f1").wait()
        assert session.statuses.state("f1") == IndexingState.FAILED

        fake_service.index_path(session.knowledge_base_id, "f1", "/a.txt")
        await session.retry(file)
        await session.pollers.get("f1").wait()

        assert session.statuses.state("f1") == IndexingState.INDEXED

    @pytest.mark.asyncio
    async def test_retry_requires_failed(self, kb_service):
        session = make_session(kb_service)

        with pytest.raises(InvalidTransitionError):
            await session.retry(resource("f1", "a.txt"))

    @pytest.mark.asyncio
    async def test_index_folder(self, kb_service, fake_service):
        folder = resource("d1", "docs", directory=True)
        session = make_session(kb_service)

        await session.index(folder)
        assert session.statuses.state("d1") == IndexingState.INDEXING_FOLDER

        kb_id = session.knowledge_base_id
        fake_service.index_path(kb_id, "c1", "/docs/a.txt")
        fake_service.index_path(kb_id, "c2", "/docs/b.txt")
        await session.pollers.get("d1").wait()

        status = session.statuses.get("d1")
        assert status.state == IndexingState.INDEXED_FULL
        assert status.files_processed == 2


    @pytest.mark.asyncio
    async def test_index_folder_with_relative_child_names(self, kb_service, fake_service):
        """Folder listings that name children relative to the folder still count."""
        folder = resource("d1", "docs", directory=True)
        session = make_session(kb_service)

        await session.index(folder)
        kb_id = session.knowledge_base_id
        fake_service.indexed.setdefault(kb_id, {})["/docs"] = [
            make_resource("c1", "a.txt"),
            make_resource("c2", "b.txt"),
        ]
        await session.pollers.get("d1").wait()

        status = session.statuses.get("d1")
        assert status.state == IndexingState.INDEXED_FULL
        assert status.files_processed == 2

    @pytest.mark.asyncio
    async def test_listing_entry_without_path_is_ignored(self, kb_service, fake_service):
        session = make_session(kb_service)

        await session.index(resource("f1", "a.txt"))
        kb_id = session.knowledge_base_id
        fake_service.indexed.setdefault(kb_id, {})["/"] = [
            {"resource_id": "x", "inode_type": "file"},
            make_resource("f1", "a.txt"),
        ]
        await session.pollers.get("f1").wait()

        assert session.statuses.state("f1") == IndexingState.INDEXED

    @pytest.mark.asyncio
    async def test_malformed_listing_fails_resource(self, kb_service, fake_service):
        """An unreadable listing ends polling in failed, not stuck in indexing."""
        session = make_session(kb_service)

        await session.index(resource("f1", "a.txt"))
        kb_id = session.knowledge_base_id
        fake_service.indexed.setdefault(kb_id, {})["/"] = [{"inode_path": {"path": "a.txt"}}]
        poller = session.pollers.get("f1")
        await poller.wait()

        status = session.statuses.get("f1")
        assert status.state == IndexingState.FAILED
        assert status.error.startswith("Status check failed")
        assert poller.attempts == 1


class TestIndexSelected:
    """Batch indexing of the selected files."""

    @pytest.mark.asyncio
    async def test_files_only_and_selection_cleared(self, kb_service, fake_service):
        session = make_session(kb_service, interval=60)
        for item in (
            resource("f1", "a.txt"),
            resource("f2", "b.txt"),
            resource("d1", "docs", directory=True),
        ):
            session.toggle_selection(item)

        outcome = await session.index_selected()

        assert set(outcome.connection_source_ids) == {"f1", "f2"}
        assert len(session.selection) == 0
        assert session.statuses.state("d1") == IndexingState.PRISTINE
        assert sorted(session.pollers.active_ids) == ["f1", "f2"]
        assert fake_service.count("PUT", f"/knowledge_bases/{session.knowledge_base_id}") == 1
        await session.close()

    @pytest.mark.asyncio
    async def test_nothing_selected(self, kb_service):
        session = make_session(kb_service)

        assert await session.index_selected() is None

    @pytest.mark.asyncio
    async def test_rejected_batch_keeps_selection(self, kb_service, fake_service):
        kb_id = fake_service.add_knowledge_base(CONNECTION_ID)["knowledge_base_id"]
        fake_service.fail("PUT", f"/knowledge_bases/{kb_id}", 500)
        session = make_session(kb_service)
        session.toggle_selection(resource("f1", "a.txt"))
        session.toggle_selection(resource("f2", "b.txt"))

        with pytest.raises(UpstreamError):
            await session.index_selected()

        assert len(session.selection) == 2
        assert session.statuses.state("f1") == IndexingState.PRISTINE
        assert session.statuses.state("f2") == IndexingState.PRISTINE


class TestDeindex:
    """Removing an indexed resource."""

    async def _indexed_session(self, kb_service, fake_service):
        kb_id = fake_service.add_knowledge_base(CONNECTION_ID, ["f1"])["knowledge_base_id"]
        fake_service.index_path(kb_id, "f1", "/a.txt")
        session = make_session(kb_service)
        file = resource("f1", "a.txt")
        await session.sync_statuses([file])
        assert session.statuses.state("f1") == IndexingState.INDEXED
        return session, file, kb_id

    @pytest.mark.asyncio
    async def test_deindex(self, kb_service, fake_service):
        session, file, kb_id = await self._indexed_session(kb_service, fake_service)

        outcome = await session.deindex(file)

        assert outcome.connection_source_ids == []
        assert session.statuses.state("f1") == IndexingState.PRISTINE
        assert session.members == set()
        assert fake_service.indexed_paths(kb_id) == []

    @pytest.mark.asyncio
    async def test_rejected_remove_rolls_back(self, kb_service, fake_service):
        """A 500 on remove restores membership and the indexed status."""
        session, file, kb_id = await self._indexed_session(kb_service, fake_service)
        fake_service.fail("PUT", f"/knowledge_bases/{kb_id}", 500)
        seen = []
        session.statuses.subscribe(lambda rid, old, new: seen.append(new.state))

        with pytest.raises(UpstreamError):
            await session.deindex(file)

        assert seen == [IndexingState.DEINDEXING, IndexingState.INDEXED]
        assert session.statuses.state("f1") == IndexingState.INDEXED
        assert session.members == {"f1"}
        assert fake_service.knowledge_bases[kb_id]["connection_source_ids"] == ["f1"]

    @pytest.mark.asyncio
    async def test_listing_cleanup_failure_is_not_fatal(self, kb_service, fake_service):
        session, file, kb_id = await self._indexed_session(kb_service, fake_service)
        fake_service.fail("DELETE", f"/knowledge_bases/{kb_id}/resources", 500)

        await session.deindex(file)

        assert session.statuses.state("f1") == IndexingState.PRISTINE

    @pytest.mark.asyncio
    async def test_deindex_requires_indexed(self, kb_service):
        session = make_session(kb_service)

        with pytest.raises(InvalidTransitionError):
            await session.deindex(resource("f1", "a.txt"))


    @pytest.mark.asyncio
    async def test_folder_child_cannot_be_deindexed(self, kb_service, fake_service):
        """A file indexed through a member folder keeps its status and listing entry."""
        kb_id = fake_service.add_knowledge_base(CONNECTION_ID, ["d1"])["knowledge_base_id"]
        fake_service.index_path(kb_id, "d1", "/docs", directory=True)
        fake_service.index_path(kb_id, "c1", "/docs/a.txt")
        session = make_session(kb_service)
        child = resource("c1", "docs/a.txt")
        await session.sync_statuses([resource("d1", "docs", directory=True), child])
        assert session.statuses.state("c1") == IndexingState.INDEXED

        with pytest.raises(InvalidTransitionError):
            await session.deindex(child)

        assert session.statuses.state("c1") == IndexingState.INDEXED
        assert fake_service.count("PUT", f"/knowledge_bases/{kb_id}") == 0
        assert "/docs/a.txt" in fake_service.indexed_paths(kb_id)


class TestSessionLifecycle:
    """Navigation, closing and the session registry."""

    def test_navigate_clears_selection(self, kb_service):
        session = make_session(kb_service)
        session.toggle_selection(resource("f1", "a.txt"))

        session.navigate("folder-1")

        assert len(session.selection) == 0
        assert session.current_folder_id == "folder-1"

    @pytest.mark.asyncio
    async def test_close_cancels_pollers(self, kb_service):
        session = make_session(kb_service, interval=60)
        await session.index(resource("f1", "a.txt"))
        poller = session.pollers.get("f1")

        assert await session.close() == 1
        await poller.wait()

        assert poller.done
        assert session.pollers.active_ids == []

    @pytest.mark.asyncio
    async def test_registry(self, kb_service):
        registry = SessionRegistry(kb_service, poll_interval=60)

        first = registry.get_or_create(CONNECTION_ID)
        assert registry.get_or_create(CONNECTION_ID) is first
        assert len(registry) == 1

        assert await registry.close(CONNECTION_ID) is True
        assert await registry.close(CONNECTION_ID) is False
        registry.get_or_create("a")
        registry.get_or_create("b")
        assert await registry.close_all() == 2
        assert len(registry) == 0
